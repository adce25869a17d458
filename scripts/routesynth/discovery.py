from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Pattern, Sequence

from utils import progress

from .constants import EXCLUDE_DIRS, SCAN_EXTS


class SynthConfigError(ValueError):
    """The include patterns or scan root cannot be used at all."""


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` groups (nested allowed); unbalanced braces stay literal."""
    start = pattern.find("{")
    while start != -1:
        depth = 0
        for idx in range(start, len(pattern)):
            ch = pattern[idx]
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    body = pattern[start + 1 : idx]
                    options = _split_top_level(body)
                    if len(options) < 2:
                        break
                    head, tail = pattern[:start], pattern[idx + 1 :]
                    expanded: List[str] = []
                    for option in options:
                        expanded.extend(expand_braces(head + option + tail))
                    return expanded
        start = pattern.find("{", start + 1)
    return [pattern]


def _split_top_level(body: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = []
    for ch in body:
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        current.append(ch)
    parts.append("".join(current))
    return parts


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> Pattern[str]:
    out: List[str] = []
    idx = 0
    while idx < len(pattern):
        ch = pattern[idx]
        if pattern.startswith("**/", idx):
            out.append("(?:.*/)?")
            idx += 3
            continue
        if pattern.startswith("**", idx):
            out.append(".*")
            idx += 2
            continue
        if ch == "*":
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            end = pattern.find("]", idx + 1)
            if end == -1:
                out.append(re.escape(ch))
            else:
                body = pattern[idx + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                idx = end
        else:
            out.append(re.escape(ch))
        idx += 1
    return re.compile("".join(out) + r"\Z")


def normalize_pattern(pattern: str) -> str:
    pattern = pattern.strip().replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern


def match_globs(path: str, globs: Sequence[str]) -> bool:
    if not globs:
        return False
    name = path.rsplit("/", 1)[-1]
    for raw in globs:
        for pattern in expand_braces(normalize_pattern(raw)):
            if not pattern:
                continue
            regex = glob_to_regex(pattern)
            if regex.match(path):
                return True
            if "/" not in pattern and regex.match(name):
                return True
    return False


def is_scannable(path: str) -> bool:
    if path.endswith((".d.ts", ".d.mts", ".d.cts")):
        return False
    return path.endswith(SCAN_EXTS)


def is_included(path: str, include: Sequence[str], exclude: Sequence[str]) -> bool:
    if not is_scannable(path):
        return False
    if match_globs(path, exclude):
        return False
    return match_globs(path, include)


def list_source_files(
    root: Path,
    include: Sequence[str],
    *,
    exclude: Optional[Sequence[str]] = None,
    quiet: bool = False,
) -> List[str]:
    """Walk ``root`` and return the sorted relative paths the globs select."""
    patterns = [normalize_pattern(item) for item in include if isinstance(item, str)]
    patterns = [item for item in patterns if item]
    if not patterns:
        raise SynthConfigError("No include patterns configured")
    if not root.is_dir():
        raise SynthConfigError(f"Scan root is not a directory: {root}")
    excluded = list(exclude or [])
    if not quiet:
        progress("Discovering route files...")
    files: List[str] = []
    for current, dirs, filenames in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in EXCLUDE_DIRS)
        for filename in filenames:
            full = Path(current) / filename
            if full.is_symlink():
                continue
            try:
                rel = full.relative_to(root).as_posix()
            except ValueError:
                continue
            if is_included(rel, patterns, excluded):
                files.append(rel)
    files = sorted(set(files))
    if not quiet:
        progress(f"Found {len(files)} files", done=True)
    return files


def relative_to_root(root: Path, path: str) -> Optional[str]:
    """Relative POSIX path for ``path`` under ``root``; ``None`` when outside."""
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root / candidate
    for base, target in (
        (Path(os.path.abspath(root)), Path(os.path.abspath(candidate))),
        (root.resolve(), candidate.resolve()),
    ):
        try:
            return target.relative_to(base).as_posix()
        except ValueError:
            continue
    return None
