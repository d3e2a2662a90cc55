"""Record sources for the lineage engine"""
from .domo import DomoConnector
from .json_file import JsonFileSource

__all__ = [
    'DomoConnector',
    'JsonFileSource'
]
