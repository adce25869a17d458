"""Read handler signatures as text.

There is no type checker here: parameter text is copied from the source and
return types come from annotations or a shallow reading of what the body
returns. Whatever can't be read statically becomes ``any``.
"""
from __future__ import annotations

import re
from typing import Dict, List, Optional, Set, Tuple

from tree_sitter import Node

from .imports import module_specifier, rebase_specifier
from .syntax import (
    FUNCTION_NODES,
    SourceUnit,
    first_named,
    has_bare_return,
    is_async,
    named,
    node_text,
    property_key,
    return_expressions,
)

NUMBER_OPS = {"-", "*", "/", "%", "**", "&", "|", "^", "<<", ">>", ">>>"}
BOOLEAN_OPS = {"==", "===", "!=", "!==", "<", "<=", ">", ">=", "in", "instanceof"}
NULLISH_OPS = {"||", "??"}

KNOWN_CALLS = {
    "String": "string",
    "Number": "number",
    "Boolean": "boolean",
    "BigInt": "bigint",
    "Symbol": "symbol",
    "parseInt": "number",
    "parseFloat": "number",
    "isNaN": "boolean",
    "JSON.stringify": "string",
    "Date.now": "number",
    "Math.random": "number",
    "Math.floor": "number",
    "Math.ceil": "number",
    "Math.round": "number",
    "Math.max": "number",
    "Math.min": "number",
    "Math.abs": "number",
    "Array.isArray": "boolean",
    "Object.keys": "string[]",
    "Number.isInteger": "boolean",
    "Number.isFinite": "boolean",
}
KNOWN_METHODS = {
    "toString": "string",
    "toFixed": "string",
    "toUpperCase": "string",
    "toLowerCase": "string",
    "trim": "string",
    "join": "string",
    "padStart": "string",
    "padEnd": "string",
    "toISOString": "string",
    "includes": "boolean",
    "startsWith": "boolean",
    "endsWith": "boolean",
    "some": "boolean",
    "every": "boolean",
    "has": "boolean",
    "indexOf": "number",
    "getTime": "number",
}
GENERIC_DEFAULTS = {
    "Promise": "Promise<any>",
    "Map": "Map<any, any>",
    "Set": "Set<any>",
    "Array": "any[]",
}
IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
MAX_DEPTH = 24


def param_text(handler: Node) -> str:
    """Source text of the handler's first declared parameter, or ``''``."""
    single = handler.child_by_field_name("parameter")
    if single is not None:
        return node_text(single)
    params = named(handler.child_by_field_name("parameters"))
    return node_text(params[0]) if params else ""


def return_type(handler: Node, unit: Optional[SourceUnit] = None, *, module_dir: str = ".") -> str:
    return TypeReader(unit, module_dir=module_dir).function_return(handler)


def union(types: List[str]) -> str:
    seen: List[str] = []
    for item in types:
        for part in split_union(item):
            if part not in seen:
                seen.append(part)
    if not seen:
        return "never"
    if "any" in seen:
        return "any"
    return " | ".join(seen)


def split_union(text: str) -> List[str]:
    """Top-level ``|`` members of a type, ignoring pipes nested in brackets."""
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    prev = ""
    for ch in text:
        if ch in "<({[":
            depth += 1
        elif ch in ")}]" or (ch == ">" and prev != "="):
            depth -= 1
        prev = ch
        if ch == "|" and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    parts.append("".join(current).strip())
    return [part for part in parts if part]


def unwrap_promise(text: str) -> str:
    match = re.match(r"^Promise<(.*)>$", text.strip(), flags=re.DOTALL)
    if match and _balanced(match.group(1)):
        return match.group(1).strip()
    return text


def _balanced(text: str) -> bool:
    depth = 0
    prev = ""
    for ch in text:
        if ch == "<":
            depth += 1
        elif ch == ">" and prev != "=":
            depth -= 1
            if depth < 0:
                return False
        prev = ch
    return depth == 0


def _array_of(element: str) -> str:
    if len(split_union(element)) > 1 or "=>" in element:
        return f"({element})[]"
    return f"{element}[]"


def _type_node(annotation: Optional[Node]) -> Optional[Node]:
    """Type inside a ``: T`` annotation node."""
    return first_named(annotation) if annotation is not None else None


def _member_types(object_type: Node) -> Dict[str, Node]:
    members: Dict[str, Node] = {}
    for sig in named(object_type):
        if sig.type != "property_signature":
            continue
        name = property_key(sig.child_by_field_name("name"))
        type_node = _type_node(sig.child_by_field_name("type"))
        if name and type_node is not None:
            members[name] = type_node
    return members


class TypeReader:
    def __init__(
        self,
        unit: Optional[SourceUnit] = None,
        *,
        module_dir: str = ".",
        active: Optional[Set[int]] = None,
    ) -> None:
        self.unit = unit
        self.module_dir = module_dir
        self.env: Dict[str, str] = {}
        self._active: Set[int] = active if active is not None else set()

    def _nested(self) -> "TypeReader":
        return TypeReader(self.unit, module_dir=self.module_dir, active=self._active)

    def qualified(self, node: Optional[Node]) -> Optional[str]:
        """Text of a type node with file-local and imported type names made importable.

        The generated module declares none of the handler file's types, so
        ``Tab`` becomes ``import('../src/tabs').Tab`` as seen from ``module_dir``.
        """
        if node is None:
            return None
        if self.unit is None:
            return node_text(node)
        edits: List[Tuple[int, int, str]] = []
        stack = [node]
        while stack:
            current = stack.pop()
            if current.type == "nested_type_identifier":
                head = current.child_by_field_name("module")
                if head is not None and head.type == "identifier":
                    binding = self.unit.import_binding(node_text(head))
                    if binding is not None and binding.is_namespace:
                        namespace = self._import_type(binding.source, self.unit.path)
                        edits.append((head.start_byte, head.end_byte, namespace))
                continue
            if current.type == "type_identifier":
                reference = self._reference(node_text(current))
                if reference is not None:
                    edits.append((current.start_byte, current.end_byte, reference))
                continue
            stack.extend(current.children)
        if not edits:
            return node_text(node)
        source = self.unit.source
        pieces: List[str] = []
        cursor = node.start_byte
        for start, end, replacement in sorted(edits):
            pieces.append(source[cursor:start].decode("utf-8", errors="replace"))
            pieces.append(replacement)
            cursor = end
        pieces.append(source[cursor : node.end_byte].decode("utf-8", errors="replace"))
        return "".join(pieces)

    def _reference(self, name: str) -> Optional[str]:
        unit = self.unit
        if unit is None:
            return None
        if unit.declares_type(name):
            return f"import('{module_specifier(unit.path, self.module_dir)}').{name}"
        binding = unit.import_binding(name)
        if binding is None or binding.is_namespace:
            return None
        return f"{self._import_type(binding.source, unit.path)}.{binding.imported}"

    def _import_type(self, specifier: str, importer: str) -> str:
        return f"import('{rebase_specifier(specifier, importer, self.module_dir)}')"

    def function_return(self, handler: Node) -> str:
        declared = self.qualified(_type_node(handler.child_by_field_name("return_type")))
        if declared:
            return declared
        saved = dict(self.env)
        self._bind_params(handler)
        try:
            inferred = self._body_type(handler)
        finally:
            self.env = saved
        if is_async(handler):
            return f"Promise<{unwrap_promise(inferred)}>"
        return inferred

    def _body_type(self, handler: Node) -> str:
        body = handler.child_by_field_name("body")
        if body is None:
            return "void"
        if body.type != "statement_block":
            return self.infer(body)
        self._bind_locals(body)
        exprs = return_expressions(handler)
        if not exprs:
            return "void"
        types = [self.infer(expr) for expr in exprs]
        if has_bare_return(handler):
            types.append("undefined")
        return union(types)

    def _bind_params(self, handler: Node) -> None:
        for param in named(handler.child_by_field_name("parameters")):
            if param.type not in {"required_parameter", "optional_parameter"}:
                continue
            pattern = param.child_by_field_name("pattern")
            type_node = first_named(param.child_by_field_name("type"))
            if pattern is None or type_node is None:
                continue
            if pattern.type == "identifier":
                self.env[node_text(pattern)] = self.qualified(type_node) or "any"
            elif pattern.type == "object_pattern" and type_node.type == "object_type":
                members = _member_types(type_node)
                for item in named(pattern):
                    if item.type == "shorthand_property_identifier_pattern":
                        name = node_text(item)
                        if name in members:
                            self.env[name] = self.qualified(members[name]) or "any"
                    elif item.type == "object_assignment_pattern":
                        left = item.child_by_field_name("left")
                        name = node_text(left)
                        if name in members:
                            self.env[name] = self.qualified(members[name]) or "any"
                    elif item.type == "pair_pattern":
                        key = property_key(item.child_by_field_name("key"))
                        value = item.child_by_field_name("value")
                        if key in members and value is not None and value.type == "identifier":
                            self.env[node_text(value)] = self.qualified(members[key]) or "any"

    def _bind_locals(self, block: Node) -> None:
        for statement in named(block):
            if statement.type not in {"lexical_declaration", "variable_declaration"}:
                continue
            for declarator in named(statement):
                if declarator.type != "variable_declarator":
                    continue
                name_node = declarator.child_by_field_name("name")
                if name_node is None or name_node.type != "identifier":
                    continue
                declared = self.qualified(_type_node(declarator.child_by_field_name("type")))
                value = declarator.child_by_field_name("value")
                if declared:
                    self.env[node_text(name_node)] = declared
                elif value is not None:
                    self.env[node_text(name_node)] = self.infer(value)

    def infer(self, node: Node, depth: int = 0) -> str:
        if depth > MAX_DEPTH:
            return "any"
        kind = node.type
        nxt = depth + 1
        if kind == "parenthesized_expression":
            inner = first_named(node)
            return self.infer(inner, nxt) if inner is not None else "any"
        if kind == "as_expression":
            children = named(node)
            if len(children) >= 2:
                return self.qualified(children[-1]) or "any"
            return self.infer(children[0], nxt) if children else "any"
        if kind in {"satisfies_expression", "non_null_expression"}:
            inner = first_named(node)
            if inner is None:
                return "any"
            inferred = self.infer(inner, nxt)
            if kind == "non_null_expression":
                parts = [part for part in split_union(inferred) if part not in {"null", "undefined"}]
                return union(parts) if parts else inferred
            return inferred
        if kind == "type_assertion":
            children = named(node)
            if children and children[0].type == "type_arguments":
                inner = first_named(children[0])
                if inner is not None:
                    return self.qualified(inner) or "any"
            return "any"
        if kind == "number":
            return "bigint" if node_text(node).endswith("n") else "number"
        if kind in {"string", "template_string"}:
            return "string"
        if kind in {"true", "false"}:
            return "boolean"
        if kind == "null":
            return "null"
        if kind == "undefined":
            return "undefined"
        if kind == "regex":
            return "RegExp"
        if kind == "identifier":
            return self._identifier(node_text(node))
        if kind == "binary_expression":
            return self._binary(node, nxt)
        if kind == "unary_expression":
            op = node_text(node.child_by_field_name("operator"))
            if op == "!" or op == "delete":
                return "boolean"
            if op == "typeof":
                return "string"
            if op == "void":
                return "undefined"
            return "number"
        if kind == "update_expression":
            return "number"
        if kind == "ternary_expression":
            consequence = node.child_by_field_name("consequence")
            alternative = node.child_by_field_name("alternative")
            if consequence is None or alternative is None:
                return "any"
            return union([self.infer(consequence, nxt), self.infer(alternative, nxt)])
        if kind == "await_expression":
            inner = first_named(node)
            return unwrap_promise(self.infer(inner, nxt)) if inner is not None else "any"
        if kind == "new_expression":
            ctor = node.child_by_field_name("constructor")
            if ctor is None or ctor.type not in {"identifier", "member_expression"}:
                return "any"
            args = node.child_by_field_name("type_arguments")
            name = node_text(ctor)
            if ctor.type == "identifier":
                name = self._reference(name) or name
            if args is not None:
                return name + (self.qualified(args) or "")
            return GENERIC_DEFAULTS.get(name, name)
        if kind == "call_expression":
            return self._call(node, nxt)
        if kind == "member_expression":
            prop = node_text(node.child_by_field_name("property"))
            if prop == "length":
                return "number"
            return "any"
        if kind == "object":
            return self._object(node, nxt)
        if kind == "array":
            elements = [child for child in named(node) if child.type != "spread_element"]
            if not elements:
                return "any[]"
            return _array_of(union([self.infer(child, nxt) for child in elements]))
        if kind in FUNCTION_NODES:
            params = node.child_by_field_name("parameters")
            single = node.child_by_field_name("parameter")
            signature = node_text(params) if params is not None else f"({node_text(single)})"
            return f"{signature} => {self._nested().function_return(node)}"
        return "any"

    def _identifier(self, name: str) -> str:
        if name in self.env:
            return self.env[name]
        if name == "undefined":
            return "undefined"
        if name in {"NaN", "Infinity"}:
            return "number"
        if self.unit is not None:
            for declarator in self.unit.variables(name):
                declared = self.qualified(_type_node(declarator.child_by_field_name("type")))
                if declared:
                    return declared
                value = declarator.child_by_field_name("value")
                if value is not None and value.type in {"number", "string", "true", "false", "template_string"}:
                    return self.infer(value)
        return "any"

    def _binary(self, node: Node, depth: int) -> str:
        op = node_text(node.child_by_field_name("operator"))
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if op in BOOLEAN_OPS:
            return "boolean"
        if op in NUMBER_OPS:
            return "number"
        if left is None or right is None:
            return "any"
        if op == "+":
            lhs = self.infer(left, depth)
            rhs = self.infer(right, depth)
            if "string" in (lhs, rhs):
                return "string"
            if lhs == rhs == "number":
                return "number"
            if lhs == rhs == "bigint":
                return "bigint"
            return "any"
        if op in NULLISH_OPS:
            lhs = [part for part in split_union(self.infer(left, depth)) if part not in {"null", "undefined"}]
            return union(lhs + [self.infer(right, depth)])
        if op == "&&":
            return self.infer(right, depth)
        return "any"

    def _call(self, node: Node, depth: int) -> str:
        function = node.child_by_field_name("function")
        if function is None:
            return "any"
        name = node_text(function)
        if name in KNOWN_CALLS:
            return KNOWN_CALLS[name]
        args = named(node.child_by_field_name("arguments"))
        if name == "Promise.resolve":
            return f"Promise<{self.infer(args[0], depth) if args else 'void'}>"
        if function.type == "member_expression":
            method = node_text(function.child_by_field_name("property"))
            return KNOWN_METHODS.get(method, "any")
        if function.type == "identifier" and self.unit is not None:
            for declaration in self.unit.functions(name):
                if declaration.start_byte in self._active:
                    return "any"
                self._active.add(declaration.start_byte)
                try:
                    return self._nested().function_return(declaration)
                finally:
                    self._active.discard(declaration.start_byte)
        return "any"

    def _object(self, node: Node, depth: int) -> str:
        fields: List[str] = []
        for entry in named(node):
            if entry.type == "pair":
                key = property_key(entry.child_by_field_name("key"))
                value = entry.child_by_field_name("value")
                if key is None or value is None:
                    continue
                fields.append(f"{_field_name(key)}: {self.infer(value, depth)}")
            elif entry.type == "shorthand_property_identifier":
                name = node_text(entry)
                fields.append(f"{name}: {self._identifier(name)}")
            elif entry.type == "method_definition":
                key = property_key(entry.child_by_field_name("name"))
                if key is None:
                    continue
                params = node_text(entry.child_by_field_name("parameters")) or "()"
                fields.append(f"{_field_name(key)}: {params} => {self._nested().function_return(entry)}")
        if not fields:
            return "{}"
        return "{ " + "; ".join(fields) + " }"


def _field_name(key: str) -> str:
    if IDENTIFIER_RE.match(key) or key.isdigit():
        return key
    return "'" + key.replace("\\", "\\\\").replace("'", "\\'") + "'"
