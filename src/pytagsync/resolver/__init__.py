"""Dependency resolution: parsers, graph builder and creation ordering."""

from pytagsync.resolver.discovery import ReverseDiscovery
from pytagsync.resolver.events import (
    KNOWN_TEMPLATE_EVENTS,
    extract_custom_event_name,
    extract_pushed_events,
    known_events,
    register_template_events,
)
from pytagsync.resolver.graph_builder import DependencyGraphBuilder
from pytagsync.resolver.lookup import (
    EntityLookup,
    IndexedLookup,
    ServiceLookup,
    build_template_type_index,
)
from pytagsync.resolver.parsers import (
    PARSERS,
    extract_dependencies,
    extract_variable_references,
)
from pytagsync.resolver.toposort import (
    check_acyclic,
    find_cycle,
    kahn_order,
    sort_by_kind_priority,
    topological_sort,
)

__all__ = [
    "extract_dependencies",
    "extract_variable_references",
    "PARSERS",
    "KNOWN_TEMPLATE_EVENTS",
    "register_template_events",
    "known_events",
    "extract_custom_event_name",
    "extract_pushed_events",
    "EntityLookup",
    "IndexedLookup",
    "ServiceLookup",
    "build_template_type_index",
    "ReverseDiscovery",
    "DependencyGraphBuilder",
    "check_acyclic",
    "find_cycle",
    "kahn_order",
    "sort_by_kind_priority",
    "topological_sort",
]
