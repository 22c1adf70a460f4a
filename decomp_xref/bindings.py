"""
Name bindings for one document: the import table and the local scope chain.

The import table is built once per document. Local bindings live in an
explicit stack of frames that the resolver pushes and pops while walking the
tree, so a lookup is always "innermost frame first".
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from tree_sitter import Node

from .java_ast import ParsedSource, TypeName


def nested_forms(internal_name: str) -> List[str]:
    """*internal_name* followed by the readings that treat trailing segments as member classes.

    An import of `java.util.Map.Entry` names the class java/util/Map$Entry.
    """
    parts = internal_name.split("/")
    out = [internal_name]
    for i in range(len(parts) - 1, 0, -1):
        out.append("/".join(parts[:i]) + "$" + "$".join(parts[i:]))
    return out


@dataclass(frozen=True)
class ImportDeclaration:
    dotted_name: str
    node: Node
    static: bool = False
    wildcard: bool = False

    @property
    def internal_name(self) -> str:
        return self.dotted_name.replace(".", "/")

    @property
    def simple_name(self) -> str:
        return self.dotted_name.rsplit(".", 1)[-1]

    @property
    def member_owner(self) -> str:
        """Internal name of the class a static import takes its member from."""
        return self.internal_name.rsplit("/", 1)[0]


@dataclass(frozen=True)
class ImportBinding:
    simple_name: str
    internal_name: str

    @property
    def candidates(self) -> List[str]:
        return nested_forms(self.internal_name)


class ImportTable:
    def __init__(self, declarations: List[ImportDeclaration]) -> None:
        self.declarations = declarations
        # wildcard imports cannot be resolved from a simple name; static ones import members
        self.bindings: List[ImportBinding] = [
            ImportBinding(d.simple_name, d.internal_name)
            for d in declarations
            if not d.wildcard and not d.static
        ]
        # member name -> owning classes of single-member static imports
        self.static_members: Dict[str, List[str]] = {}
        for d in declarations:
            if d.static and not d.wildcard:
                self.static_members.setdefault(d.simple_name, []).append(d.member_owner)

    @classmethod
    def from_source(cls, parsed: ParsedSource) -> "ImportTable":
        decls: List[ImportDeclaration] = []
        for node in parsed.root.named_children:
            if node.type != "import_declaration":
                continue
            name_node = next(
                (c for c in node.named_children if c.type in ("scoped_identifier", "identifier")),
                None,
            )
            if name_node is None:
                continue
            decls.append(
                ImportDeclaration(
                    dotted_name="".join(parsed.text(name_node).split()),
                    node=name_node,
                    static=any(c.type == "static" for c in node.children),
                    wildcard=any(c.type == "asterisk" for c in node.children),
                )
            )
        return cls(decls)

    def bindings_for(self, simple_name: str) -> List[ImportBinding]:
        return [b for b in self.bindings if b.simple_name == simple_name]


@dataclass(frozen=True)
class LocalBinding:
    name: str
    # None when the declaration gives no usable class type (var, lambda, primitive, array)
    declared_type: Optional[TypeName]


@dataclass
class BindingFrame:
    kind: str
    bindings: Dict[str, LocalBinding] = field(default_factory=dict)


class ScopeStack:
    def __init__(self) -> None:
        self.frames: List[BindingFrame] = []

    def __len__(self) -> int:
        return len(self.frames)

    def push(self, kind: str) -> BindingFrame:
        frame = BindingFrame(kind)
        self.frames.append(frame)
        return frame

    def pop(self) -> BindingFrame:
        return self.frames.pop()

    def bind(self, name: str, declared_type: Optional[TypeName]) -> None:
        if not self.frames:
            self.push("root")
        self.frames[-1].bindings[name] = LocalBinding(name, declared_type)

    def bind_all(self, pairs: List[Tuple[str, Optional[TypeName]]]) -> None:
        for name, declared_type in pairs:
            self.bind(name, declared_type)

    def lookup(self, name: str) -> Optional[LocalBinding]:
        for frame in reversed(self.frames):
            hit = frame.bindings.get(name)
            if hit is not None:
                return hit
        return None


# -------------------------
# Declarations -> (name, type) pairs
# -------------------------
Declared = List[Tuple[str, Optional[TypeName]]]


def _declarators(parsed: ParsedSource, node: Node, declared_type: Optional[TypeName]) -> Declared:
    out: Declared = []
    for d in node.named_children:
        if d.type != "variable_declarator":
            continue
        name_node = d.child_by_field_name("name")
        if name_node is None:
            continue
        # `Foo x[]` declares an array
        is_array = d.child_by_field_name("dimensions") is not None
        out.append((parsed.text(name_node), None if is_array else declared_type))
    return out


def variable_declarations(parsed: ParsedSource, node: Node) -> Declared:
    """local_variable_declaration / field_declaration / constant_declaration."""
    return _declarators(parsed, node, parsed.type_name(node.child_by_field_name("type")))


def formal_parameters(parsed: ParsedSource, params: Optional[Node]) -> Declared:
    out: Declared = []
    if params is None:
        return out
    for p in params.named_children:
        if p.type == "formal_parameter":
            name_node = p.child_by_field_name("name")
            if name_node is None:
                continue
            declared = parsed.type_name(p.child_by_field_name("type"))
            if p.child_by_field_name("dimensions") is not None:
                declared = None
            out.append((parsed.text(name_node), declared))
        elif p.type == "spread_parameter":
            # varargs are arrays
            for d in p.named_children:
                if d.type == "variable_declarator":
                    name_node = d.child_by_field_name("name")
                    if name_node is not None:
                        out.append((parsed.text(name_node), None))
        elif p.type == "identifier":
            out.append((parsed.text(p), None))
    return out


def lambda_parameters(parsed: ParsedSource, node: Node) -> Declared:
    params = node.child_by_field_name("parameters")
    if params is None:
        return []
    if params.type == "identifier":
        return [(parsed.text(params), None)]
    if params.type == "inferred_parameters":
        return [(parsed.text(c), None) for c in params.named_children if c.type == "identifier"]
    return formal_parameters(parsed, params)


def enhanced_for_variable(parsed: ParsedSource, node: Node) -> Declared:
    name_node = node.child_by_field_name("name")
    if name_node is None:
        return []
    declared = parsed.type_name(node.child_by_field_name("type"))
    if node.child_by_field_name("dimensions") is not None:
        declared = None
    return [(parsed.text(name_node), declared)]


def catch_parameter(parsed: ParsedSource, node: Node) -> Declared:
    param = next((c for c in node.named_children if c.type == "catch_formal_parameter"), None)
    if param is None:
        return []
    name_node = param.child_by_field_name("name")
    if name_node is None:
        return []
    catch_type = next((c for c in param.named_children if c.type == "catch_type"), None)
    types = list(catch_type.named_children) if catch_type is not None else []
    # multi-catch has no single declared type
    declared = parsed.type_name(types[0]) if len(types) == 1 else None
    return [(parsed.text(name_node), declared)]


def resource_variable(parsed: ParsedSource, node: Node) -> Declared:
    name_node = node.child_by_field_name("name")
    type_node = node.child_by_field_name("type")
    if name_node is None or type_node is None:
        return []
    return [(parsed.text(name_node), parsed.type_name(type_node))]


def member_fields(parsed: ParsedSource, declaration: Node) -> Declared:
    """Fields visible throughout a type body: fields, constants, enum constants, record components."""
    out: Declared = []
    if declaration.type == "record_declaration":
        out.extend(formal_parameters(parsed, declaration.child_by_field_name("parameters")))
    name_node = declaration.child_by_field_name("name")
    own_type = TypeName((parsed.text(name_node),)) if name_node is not None else None
    body = declaration.child_by_field_name("body")
    if body is None:
        return out
    out.extend(body_fields(parsed, body, own_type))
    return out


def body_fields(parsed: ParsedSource, body: Node, own_type: Optional[TypeName] = None) -> Declared:
    out: Declared = []
    for child in body.named_children:
        if child.type in ("field_declaration", "constant_declaration"):
            out.extend(variable_declarations(parsed, child))
        elif child.type == "enum_constant":
            name_node = child.child_by_field_name("name")
            if name_node is not None:
                out.append((parsed.text(name_node), own_type))
        elif child.type == "enum_body_declarations":
            out.extend(body_fields(parsed, child, own_type))
    return out
