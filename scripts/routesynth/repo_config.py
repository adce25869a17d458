from __future__ import annotations

import json
import posixpath
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .constants import (
    CONFIG_FILES,
    CONFLICT_POLICIES,
    DEFAULT_DECLARATION_FILE,
    DEFAULT_INCLUDE,
    DEFAULT_MODULE_NAME,
    DEFAULT_PASS_THROUGH,
    DEFAULT_ROUTERS,
    DEFAULT_RUNTIME_MODULE,
)
from .discovery import SynthConfigError


@dataclass
class SynthOptions:
    include: List[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: List[str] = field(default_factory=list)
    module_name: str = DEFAULT_MODULE_NAME
    runtime_module: str = DEFAULT_RUNTIME_MODULE
    declaration_file: str = DEFAULT_DECLARATION_FILE
    pass_through: List[str] = field(default_factory=lambda: list(DEFAULT_PASS_THROUGH))
    routers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ROUTERS))
    conflicts: str = "last"
    tsconfig: str = "tsconfig.json"

    def router_names(self) -> List[str]:
        return sorted({name for name in self.routers.values() if name})

    def helper_names(self) -> List[str]:
        """Pass-through helpers; the configured define wrapper is always one."""
        names = set(self.pass_through)
        define = self.routers.get("define")
        if define:
            names.add(define)
        return sorted(names)

    def module_dir(self) -> str:
        """Directory of the generated module relative to the root; type imports are written from there."""
        return posixpath.dirname(self.declaration_file.replace("\\", "/")) or "."

    def merged(self, **overrides: Any) -> "SynthOptions":
        """Copy with every non-``None`` override applied (CLI flags beat file config)."""
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values)


def normalize_globs(value: Any) -> List[str]:
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return []


def normalize_str(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def options_from_payload(payload: Dict[str, Any], warnings: List[str], source: str) -> SynthOptions:
    options = SynthOptions()
    if "include" in payload:
        include = normalize_globs(payload.get("include"))
        if not include:
            raise SynthConfigError(f"{source}: 'include' must be a glob or a non-empty list of globs")
        options.include = include
    options.exclude = normalize_globs(payload.get("exclude"))
    options.module_name = normalize_str(payload.get("moduleName"), options.module_name)
    options.runtime_module = normalize_str(payload.get("runtimeModule"), options.runtime_module)
    options.declaration_file = normalize_str(payload.get("declarationFile"), options.declaration_file)
    options.tsconfig = normalize_str(payload.get("tsconfig"), options.tsconfig)
    extra_helpers = normalize_globs(payload.get("passThrough"))
    if extra_helpers:
        options.pass_through = sorted(set(options.pass_through) | set(extra_helpers))
    routers = payload.get("routers")
    if isinstance(routers, dict):
        for key, value in routers.items():
            if key not in DEFAULT_ROUTERS:
                warnings.append(f"{source}: unknown router kind '{key}' ignored")
                continue
            if isinstance(value, str) and value.strip():
                options.routers[key] = value.strip()
    elif routers is not None:
        warnings.append(f"{source}: 'routers' should be an object")
    conflicts = payload.get("conflicts")
    if isinstance(conflicts, str):
        if conflicts in CONFLICT_POLICIES:
            options.conflicts = conflicts
        else:
            warnings.append(f"{source}: unknown conflicts policy '{conflicts}', using 'last'")
    return options


def load_synth_config(root: Path, warnings: List[str]) -> Tuple[SynthOptions, Optional[str]]:
    for filename in CONFIG_FILES:
        path = root / filename
        if not path.exists():
            continue
        try:
            payload = json.loads(strip_json_comments(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as exc:
            warnings.append(f"Failed to parse {filename}: {exc}")
            return SynthOptions(), filename
        if not isinstance(payload, dict):
            warnings.append(f"Invalid {filename}: expected a JSON object")
            return SynthOptions(), filename
        return options_from_payload(payload, warnings, filename), filename
    return SynthOptions(), None


def strip_json_comments(text: str) -> str:
    """Remove // and /* */ comments from JSON-like text."""
    out: List[str] = []
    in_str = False
    escape = False
    idx = 0
    while idx < len(text):
        ch = text[idx]
        if in_str:
            out.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            idx += 1
            continue
        if ch == '"':
            in_str = True
            out.append(ch)
            idx += 1
            continue
        if ch == "/" and idx + 1 < len(text):
            nxt = text[idx + 1]
            if nxt == "/":
                idx = text.find("\n", idx + 2)
                if idx == -1:
                    break
                continue
            if nxt == "*":
                end = text.find("*/", idx + 2)
                if end == -1:
                    break
                idx = end + 2
                continue
        out.append(ch)
        idx += 1
    return "".join(out)


def load_tsconfig_paths(
    root: Path,
    warnings: List[str],
    *,
    names: Sequence[str] = ("tsconfig.json", "jsconfig.json"),
) -> Dict[str, object]:
    """Load baseUrl/paths from tsconfig or jsconfig for alias resolution."""
    for name in names:
        path = root / name
        if not path.exists():
            continue
        try:
            payload = json.loads(strip_json_comments(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as exc:
            warnings.append(f"Failed to parse {name}: {exc}")
            continue
        if not isinstance(payload, dict):
            warnings.append(f"Invalid {name}: expected a JSON object")
            continue
        compiler = payload.get("compilerOptions", {})
        if not isinstance(compiler, dict):
            compiler = {}
        base_url = compiler.get("baseUrl", ".")
        if not isinstance(base_url, str) or not base_url.strip():
            base_url = "."
        try:
            config_dir = path.parent.relative_to(root).as_posix()
        except ValueError:
            config_dir = "."
        if config_dir != ".":
            base_url = f"{config_dir}/{base_url}"
        paths = compiler.get("paths", {})
        normalized: Dict[str, List[str]] = {}
        if isinstance(paths, dict):
            for key, value in paths.items():
                if not isinstance(key, str):
                    continue
                if isinstance(value, str):
                    normalized[key] = [value]
                elif isinstance(value, list):
                    normalized[key] = [item for item in value if isinstance(item, str)]
        if normalized:
            return {"baseUrl": base_url, "paths": normalized, "source": name}
    return {}
