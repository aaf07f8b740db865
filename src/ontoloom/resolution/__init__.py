"""Resolution domain: prefix maps, symbol resolution, import insertion."""

from ontoloom.resolution.imports import (
    DocumentStore,
    IncompatibleImportError,
    InsertImport,
    apply_import,
    ensure_symbol,
    import_keyword,
    plan_import,
)
from ontoloom.resolution.prefixes import (
    PrefixConflict,
    PrefixConflictError,
    PrefixMap,
    build_prefix_map,
    escape_prefix,
    is_local_reference,
    namespace_prefix,
    split_name,
    strip_local_prefix,
)
from ontoloom.resolution.symbols import (
    Ambiguous,
    Candidate,
    NotFound,
    PendingImport,
    Resolution,
    Resolved,
    format_disambiguation,
    resolve_symbol,
    resolve_symbols,
)

__all__ = [
    "Ambiguous",
    "Candidate",
    "DocumentStore",
    "IncompatibleImportError",
    "InsertImport",
    "NotFound",
    "PendingImport",
    "PrefixConflict",
    "PrefixConflictError",
    "PrefixMap",
    "Resolution",
    "Resolved",
    "apply_import",
    "build_prefix_map",
    "ensure_symbol",
    "escape_prefix",
    "format_disambiguation",
    "import_keyword",
    "is_local_reference",
    "namespace_prefix",
    "plan_import",
    "resolve_symbol",
    "resolve_symbols",
    "split_name",
    "strip_local_prefix",
]
