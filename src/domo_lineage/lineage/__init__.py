"""Lineage graph construction and queries"""
from .adapter import EntityStoreAdapter
from .builder import LineageGraphBuilder, build_graph
from .catalog import build_catalog_graph
from .remote import RemoteLineageMerger, merge_remote_lineage
from .traversal import (
    DataPath,
    compute_traversal,
    direct_children,
    direct_parents,
    find_orphans,
    graph_statistics,
    trace_paths,
)

__all__ = [
    'EntityStoreAdapter',
    'LineageGraphBuilder',
    'build_graph',
    'build_catalog_graph',
    'RemoteLineageMerger',
    'merge_remote_lineage',
    'DataPath',
    'compute_traversal',
    'direct_parents',
    'direct_children',
    'trace_paths',
    'find_orphans',
    'graph_statistics',
]
