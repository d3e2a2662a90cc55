"""Lineage graphs for Domo datasets, dataflows and cards"""
from .base import EntitySource, LineageSource, KeyValueStore
from .models import EntityKind, ViaKind, LineageNode, LineageEdge, LineageGraph, TraversalResult
from .errors import LineageError, NotFoundError, UpstreamUnavailableError, NoLineageDataError, MalformedResponseError
from .cache import CacheManager
from .config import LineageConfig, LineageSetup
from .lineage import EntityStoreAdapter, LineageGraphBuilder, build_graph, merge_remote_lineage, compute_traversal
from .renderers import OutputFormat, render
from .service import LineageService, LineageReport

__version__ = "0.1.0"
