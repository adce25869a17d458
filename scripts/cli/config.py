from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import List, Optional

from routesynth import SynthOptions, load_synth_config, relative_to_root


def parse_globs(values: Optional[List[str]]) -> Optional[List[str]]:
    """Flatten repeated/comma separated ``--include`` style flags; ``None`` if unset."""
    if not values:
        return None
    globs: List[str] = []
    for value in values:
        globs.extend(part.strip() for part in value.split(",") if part.strip())
    return globs or None


def resolve_options(args: argparse.Namespace, root: Path, warnings: List[str]) -> SynthOptions:
    options, _source = load_synth_config(root, warnings)
    return options.merged(
        include=parse_globs(getattr(args, "include", None)),
        exclude=parse_globs(getattr(args, "exclude", None)),
        module_name=getattr(args, "module_name", None),
        runtime_module=getattr(args, "runtime_module", None),
        conflicts=getattr(args, "conflicts", None),
        tsconfig=getattr(args, "tsconfig", None),
        declaration_file=out_declaration_file(args, root),
    )


def out_declaration_file(args: argparse.Namespace, root: Path) -> Optional[str]:
    """Root-relative ``--out``; type imports in the module are written from its directory."""
    out_arg = getattr(args, "out", None)
    if not out_arg:
        return None
    rel = relative_to_root(root, out_arg)
    if rel is None:
        rel = Path(os.path.relpath(resolve_out_path(root, out_arg, SynthOptions()), root.resolve())).as_posix()
    return rel


def resolve_out_path(root: Path, out_arg: Optional[str], options: SynthOptions) -> Path:
    out_path = Path(out_arg) if out_arg else Path(options.declaration_file)
    if out_path.is_absolute():
        return out_path
    return (root / out_path).resolve()
