"""Query-string filters, predicate compilation and list parameters."""

from .coercion import coerce_id, coerce_value, split_list
from .compiler import build_filter, compile_predicate
from .operators import DEFAULT_FILTER_REGISTRY, build_default_filter_registry
from .pagination import DEFAULT_LIMIT, ListParams, parse_list_params
from .strategy import FilterOperator, FilterOperatorRegistry, FilterOperatorStrategy
from .syntax import QueryParams, normalize_params, parse_filters

__all__ = [
    "DEFAULT_FILTER_REGISTRY",
    "DEFAULT_LIMIT",
    "FilterOperator",
    "FilterOperatorRegistry",
    "FilterOperatorStrategy",
    "ListParams",
    "QueryParams",
    "build_default_filter_registry",
    "build_filter",
    "coerce_id",
    "coerce_value",
    "compile_predicate",
    "normalize_params",
    "parse_filters",
    "parse_list_params",
    "split_list",
]
