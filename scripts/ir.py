from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple


IR_VERSION = 1


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass(frozen=True)
class RouteInfo:
    path: str
    file: str
    param_text: str = ""
    return_type: str = "any"

    def to_dict(self) -> Dict[str, str]:
        return {
            "path": self.path,
            "file": self.file,
            "paramText": self.param_text,
            "returnType": self.return_type,
        }


@dataclass(frozen=True)
class RouterDefinition:
    group: Optional[str]
    routes: Tuple[RouteInfo, ...]
    file: str
    routes_source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group": self.group,
            "file": self.file,
            "routesSource": self.routes_source,
            "routes": [route.to_dict() for route in self.routes],
        }


@dataclass
class ScanResult:
    """Everything one file contributes, plus the files its resolution read."""

    file: str
    definitions: List[RouterDefinition] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    content_hash: str = ""
    unresolved_imports: List[Tuple[str, str]] = field(default_factory=list)


def new_ir(root: Path, definitions: Sequence[RouterDefinition], table: Sequence[RouteInfo]) -> Dict[str, Any]:
    return {
        "meta": {
            "version": IR_VERSION,
            "generated_at": now_iso(),
            "root": root.as_posix(),
        },
        "definitions": [definition.to_dict() for definition in definitions],
        "routes": [route.to_dict() for route in table],
    }


def save_ir(path: Path, ir: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(ir, ensure_ascii=True, indent=2), encoding="utf-8")
