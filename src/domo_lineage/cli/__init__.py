"""Command line interface"""
from .lineage import cli

__all__ = ['cli']
