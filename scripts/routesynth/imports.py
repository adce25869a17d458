from __future__ import annotations

import os
import posixpath
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from .constants import RESOLVE_EXTS

# ESM-style specifiers name the emitted file; map them back to sources.
EMITTED_EXTS = {
    ".js": (".ts", ".tsx", ".js"),
    ".jsx": (".tsx", ".jsx"),
    ".mjs": (".mts", ".mjs"),
    ".cjs": (".cts", ".cjs"),
}


def resolve_alias_candidates(
    module: str,
    *,
    base_url: str,
    paths: Dict[str, List[str]],
) -> List[str]:
    candidates: List[str] = []
    base = Path(base_url) if base_url else Path(".")

    def qualify(value: str) -> str:
        if value.startswith(("/", "./", "../")):
            return value
        if base_url and value.startswith(f"{base_url.rstrip('/')}/"):
            return value
        return str(base / value)

    for pattern, targets in paths.items():
        if "*" in pattern:
            prefix, suffix = pattern.split("*", 1)
            if module.startswith(prefix) and module.endswith(suffix):
                token = module[len(prefix) : len(module) - len(suffix)]
                for target in targets:
                    if "*" in target:
                        candidates.append(qualify(target.replace("*", token)))
                    else:
                        candidates.append(qualify(target))
        else:
            if module == pattern:
                candidates.extend(qualify(target) for target in targets)
    return candidates


def resolve_module_candidates(
    candidates: Sequence[str], files_set: Set[str], *, exts: Sequence[str] = RESOLVE_EXTS
) -> Optional[str]:
    for raw in candidates:
        target = os.path.normpath(raw).replace("\\", "/")
        while target.startswith("./"):
            target = target[2:]
        if target.startswith("../") or target == "..":
            continue
        suffix = Path(target).suffix
        if suffix:
            if target in files_set:
                return target
            stem = target[: -len(suffix)]
            for ext in EMITTED_EXTS.get(suffix, ()):
                path = f"{stem}{ext}"
                if path in files_set:
                    return path
        for ext in exts:
            path = f"{target}{ext}"
            if path in files_set:
                return path
        for ext in exts:
            path = f"{target}/index{ext}"
            if path in files_set:
                return path
    return None


def resolve_ts_module(
    module: str,
    importer: str,
    files_set: Set[str],
    *,
    alias_config: Optional[Dict[str, object]] = None,
) -> Optional[str]:
    """Map an import specifier to a scanned file, or ``None`` if it leaves the set."""
    if not module.startswith("."):
        if not alias_config:
            return None
        base_url = str(alias_config.get("baseUrl", "."))
        paths = alias_config.get("paths", {})
        if not isinstance(paths, dict):
            return None
        candidates = resolve_alias_candidates(
            module, base_url=base_url, paths=paths  # type: ignore[arg-type]
        )
        return resolve_module_candidates(candidates, files_set)
    base = Path(importer).parent
    target = (base / module).as_posix()
    return resolve_module_candidates([target], files_set)


def module_specifier(target: str, from_dir: str) -> str:
    """Relative specifier for root-relative ``target`` as seen from ``from_dir``."""
    stem, ext = posixpath.splitext(target)
    if ext in (".ts", ".tsx"):
        target = stem
    rel = posixpath.relpath(posixpath.normpath(target), posixpath.normpath(from_dir or "."))
    return rel if rel.startswith("../") else f"./{rel}"


def rebase_specifier(specifier: str, importer: str, from_dir: str) -> str:
    """Move a relative import of ``importer`` so it works from ``from_dir``; bare ones are kept."""
    if not specifier.startswith(("./", "../")):
        return specifier
    target = posixpath.normpath(posixpath.join(posixpath.dirname(importer), specifier))
    return module_specifier(target, from_dir)
