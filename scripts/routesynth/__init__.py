from __future__ import annotations

from .aggregator import aggregate_routes
from .builder import READY, STALE, UNINITIALIZED, BuilderStateError, RouteBuilder
from .constants import (
    CONFIG_FILES,
    CONFLICT_POLICIES,
    DEFAULT_DECLARATION_FILE,
    DEFAULT_INCLUDE,
    DEFAULT_MODULE_NAME,
    DEFAULT_PASS_THROUGH,
    DEFAULT_ROUTERS,
    DEFAULT_RUNTIME_MODULE,
    EVENT_ALIASES,
    EVENT_KINDS,
    EXCLUDE_DIRS,
)
from .discovery import (
    SynthConfigError,
    expand_braces,
    glob_to_regex,
    is_included,
    list_source_files,
    match_globs,
    relative_to_root,
)
from .extractor import extract_routes
from .imports import (
    module_specifier,
    rebase_specifier,
    resolve_alias_candidates,
    resolve_module_candidates,
    resolve_ts_module,
)
from .inference import param_text, return_type
from .plugin import VirtualModulePlugin
from .project import SourceProject
from .render import render_module, render_source, type_param
from .repo_config import (
    SynthOptions,
    load_synth_config,
    load_tsconfig_paths,
    options_from_payload,
    strip_json_comments,
)
from .resolver import (
    ExpressionResolver,
    ResolvedObject,
    call_arguments,
    callee_name,
    find_property,
    member_name,
)
from .scanner import find_call_sites, router_group, scan, scan_files, scan_unit
from .syntax import SourceUnit, load_unit, parse_source, parse_text
from .table import RouteTable
