"""BTEB result resolver.

Resolves a student's examination record by racing several configured data
sources, enriching the winning record, and falling back to the public result
service when no source has it.
"""

__version__ = "0.1.0"


# Lazy imports to keep `import bteb_results` cheap
def __getattr__(name: str):
    if name == "ResultResolver":
        from bteb_results.resolver import ResultResolver
        return ResultResolver
    if name == "SourceRegistry":
        from bteb_results.sources.registry import SourceRegistry
        return SourceRegistry
    if name == "QueryKey":
        from bteb_results.models.query import QueryKey
        return QueryKey
    if name == "models":
        from bteb_results import models
        return models
    if name == "sources":
        from bteb_results import sources
        return sources
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
