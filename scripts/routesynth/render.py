from __future__ import annotations

from typing import Iterator, List, Mapping, Sequence, Tuple

from ir import RouteInfo

from .repo_config import SynthOptions
from .table import RouteTable

HEADER = "// Generated by routesynth. Do not edit by hand."

# name exported by the runtime module -> local alias in the generated module
RUNTIME_IMPORTS = (
    ("createMessageRouter", "_createMessageRouter"),
    ("createMessageSender", "_createMessageSender"),
    ("createPortRouter", "_createPortRouter"),
    ("createPortSender", "_createPortSender"),
)


def ts_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n").replace("\r", "\\r")
    return f"'{escaped}'"


def _code_chars(text: str) -> Iterator[Tuple[int, str]]:
    """(index, char) for every character outside string literals and comments.

    A string literal shows up as its closing quote only.
    """
    idx = 0
    size = len(text)
    while idx < size:
        ch = text[idx]
        if ch in "'\"`":
            end = idx + 1
            while end < size and text[end] != ch:
                end += 2 if text[end] == "\\" else 1
            if end < size:
                yield end, ch
            idx = end + 1
            continue
        if text.startswith("//", idx):
            end = text.find("\n", idx)
            if end == -1:
                return
            idx = end
            continue
        if text.startswith("/*", idx):
            end = text.find("*/", idx + 2)
            if end == -1:
                return
            idx = end + 2
            continue
        yield idx, ch
        idx += 1


def _trim_code(text: str) -> str:
    """Drop trailing whitespace and comments so nothing after ``text`` gets commented out."""
    last = -1
    for idx, ch in _code_chars(text):
        if not ch.isspace():
            last = idx
    return text[: last + 1]


def _top_level_index(text: str, target: str) -> int:
    """Index of the first ``target`` char outside brackets, strings and comments, or -1.

    ``=`` only counts when it is an assignment, not part of ``=>``/``==``/``<=``.
    """
    depth = 0
    for idx, ch in _code_chars(text):
        if ch in "<({[":
            depth += 1
        elif ch in ")}]" or (ch == ">" and text[idx - 1 : idx] != "="):
            depth -= 1
        elif ch == target and depth == 0:
            if target != "=":
                return idx
            nxt = text[idx + 1 : idx + 2]
            prev = text[idx - 1 : idx]
            if nxt not in ("=", ">") and prev not in ("=", "!", "<", ">"):
                return idx
    return -1


def type_param(param_text: str) -> str:
    """Parameter text usable in a function *type*: no initializer, never implicit any.

    Layout is kept as written; a multi-line type literal may carry comments or
    string literal types that must not be reflowed.
    """
    text = _trim_code(param_text.strip())
    if not text:
        return ""
    optional = False
    eq = _top_level_index(text, "=")
    if eq != -1:
        text = _trim_code(text[:eq])
        optional = True
    colon = _top_level_index(text, ":")
    if colon == -1:
        name = text
        annotation = "any[]" if text.startswith("...") else "any"
    else:
        name = text[:colon].rstrip()
        annotation = text[colon + 1 :].strip()
    if optional and not name.endswith("?") and not name.startswith("..."):
        if name[:1] in "{[":
            # a destructured parameter cannot be marked optional, widen it instead
            annotation = f"{annotation} | undefined"
        else:
            name = f"{name}?"
    return f"{name}: {annotation}"


def render_routes_type(routes: Sequence[RouteInfo]) -> List[str]:
    if not routes:
        return ["export type MessageRoutes = {}"]
    lines = ["export type MessageRoutes = {"]
    for route in sorted(routes, key=lambda item: item.path):
        lines.append(f"  {ts_string(route.path)}: ({type_param(route.param_text)}) => {route.return_type}")
    lines.append("}")
    return lines


def render_groups_type(groups: Mapping[str, Sequence[str]]) -> List[str]:
    if not groups:
        return ["export type MessageRouteGroups = {}"]
    lines = ["export type MessageRouteGroups = {"]
    for name in sorted(groups):
        paths = sorted(set(groups[name]))
        members = " | ".join(ts_string(path) for path in paths) if paths else "never"
        lines.append(f"  {ts_string(name)}: {members}")
    lines.append("}")
    return lines


def render_source(
    routes: Sequence[RouteInfo],
    groups: Mapping[str, Sequence[str]],
    *,
    runtime_module: str,
) -> str:
    lines: List[str] = [HEADER, "/* eslint-disable */", ""]
    lines.append("import {")
    for name, alias in RUNTIME_IMPORTS:
        lines.append(f"  {name} as {alias},")
    lines.append(f"}} from {ts_string(runtime_module)}")
    lines.append("")
    lines.extend(render_routes_type(routes))
    lines.append("")
    lines.append("export type MessagePath = keyof MessageRoutes")
    lines.append("")
    lines.extend(render_groups_type(groups))
    lines.extend(
        [
            "",
            "export const { sendMessage, sendMessageTo } = _createMessageSender<MessageRoutes>()",
            "",
            "export function createSender (options?: Parameters<typeof _createMessageSender>[0]) {",
            "  return _createMessageSender<MessageRoutes>(options)",
            "}",
            "",
            "export function createPortMessenger (options?: Parameters<typeof _createPortSender>[0]) {",
            "  return _createPortSender<MessageRoutes>(options)",
            "}",
            "",
            "export function createRouter (routes: MessageRoutes, options?: Parameters<typeof _createMessageRouter>[1]) {",
            "  return _createMessageRouter(routes, options)",
            "}",
            "",
            "export function createPortRouter (routes: MessageRoutes, options?: Parameters<typeof _createPortRouter>[1]) {",
            "  return _createPortRouter(routes, options)",
            "}",
            "",
            "export function createGroupSender<G extends keyof MessageRouteGroups> (",
            "  _group: G,",
            "  options?: Parameters<typeof _createMessageSender>[0],",
            ") {",
            "  return _createMessageSender<Pick<MessageRoutes, MessageRouteGroups[G]>>(options)",
            "}",
            "",
        ]
    )
    return "\n".join(lines)


def render_module(table: RouteTable, options: SynthOptions) -> str:
    """Module text for the current table; the same table always renders the same bytes."""
    return render_source(table.entries(), table.groups(), runtime_module=options.runtime_module)
