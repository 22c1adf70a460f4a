"""
Tree-sitter Java front end for reconstructed source.

The tree-sitter grammar recovers from syntax errors instead of failing, so a
parse is reported as failed whenever the tree contains ERROR or MISSING nodes.
Resolver-relevant node types are folded into the closed NodeKind enum.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import tree_sitter_java as tsjava
from tree_sitter import Language, Node, Parser, Tree

from .document import SourceDocument, excerpt

JAVA_LANGUAGE = Language(tsjava.language())

MAX_REPORTED_ERRORS = 20


class NodeKind(enum.Enum):
    TYPE_DECLARATION = "type_declaration"
    ANONYMOUS_CLASS_BODY = "anonymous_class_body"
    BLOCK = "block"
    METHOD = "method"
    LAMBDA = "lambda"
    FOR = "for"
    ENHANCED_FOR = "enhanced_for"
    CATCH = "catch"
    TRY_WITH_RESOURCES = "try_with_resources"
    RESOURCE = "resource"
    LOCAL_DECLARATION = "local_declaration"
    IMPORT = "import"
    PACKAGE = "package"
    TYPE_REFERENCE = "type_reference"
    METHOD_CALL = "method_call"
    OTHER = "other"


_KIND_BY_TYPE = {
    "class_declaration": NodeKind.TYPE_DECLARATION,
    "interface_declaration": NodeKind.TYPE_DECLARATION,
    "enum_declaration": NodeKind.TYPE_DECLARATION,
    "record_declaration": NodeKind.TYPE_DECLARATION,
    "annotation_type_declaration": NodeKind.TYPE_DECLARATION,
    "block": NodeKind.BLOCK,
    "constructor_body": NodeKind.BLOCK,
    "switch_block": NodeKind.BLOCK,
    "method_declaration": NodeKind.METHOD,
    "constructor_declaration": NodeKind.METHOD,
    "compact_constructor_declaration": NodeKind.METHOD,
    "lambda_expression": NodeKind.LAMBDA,
    "for_statement": NodeKind.FOR,
    "enhanced_for_statement": NodeKind.ENHANCED_FOR,
    "catch_clause": NodeKind.CATCH,
    "try_with_resources_statement": NodeKind.TRY_WITH_RESOURCES,
    "resource": NodeKind.RESOURCE,
    "local_variable_declaration": NodeKind.LOCAL_DECLARATION,
    "import_declaration": NodeKind.IMPORT,
    "package_declaration": NodeKind.PACKAGE,
    "type_identifier": NodeKind.TYPE_REFERENCE,
    "scoped_type_identifier": NodeKind.TYPE_REFERENCE,
    "method_invocation": NodeKind.METHOD_CALL,
}

_TYPE_NAME_NODES = ("type_identifier", "scoped_type_identifier", "generic_type")


def _parent_type(node: Node) -> str:
    parent = node.parent
    return parent.type if parent is not None else ""


def classify(node: Node) -> NodeKind:
    if node.type == "class_body":
        # member bodies belong to their TYPE_DECLARATION; only anonymous ones stand alone
        if _parent_type(node) in ("object_creation_expression", "enum_constant"):
            return NodeKind.ANONYMOUS_CLASS_BODY
        return NodeKind.OTHER
    kind = _KIND_BY_TYPE.get(node.type, NodeKind.OTHER)
    if kind is NodeKind.TYPE_REFERENCE:
        parent = _parent_type(node)
        # segments of a dotted name and type-variable declarations are not uses
        if parent in ("scoped_type_identifier", "type_parameter"):
            return NodeKind.OTHER
    return kind


@dataclass(frozen=True)
class TypeName:
    """A type as written in source: ("Map", "Entry") for Map.Entry."""

    segments: Tuple[str, ...]

    @property
    def simple(self) -> str:
        return self.segments[-1]

    @property
    def root(self) -> str:
        return self.segments[0]

    @property
    def is_dotted(self) -> bool:
        return len(self.segments) > 1

    @property
    def nested(self) -> str:
        """Segments joined with the nested-class separator."""
        return "$".join(self.segments)

    def __str__(self) -> str:
        return ".".join(self.segments)


@dataclass
class ParsedSource:
    document: SourceDocument
    code: bytes
    root: Node
    errors: List[str] = field(default_factory=list)
    tree: Optional[Tree] = None

    @property
    def ok(self) -> bool:
        return not self.errors

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.code[node.start_byte:node.end_byte].decode("utf-8", errors="ignore")

    def position(self, node: Node, *, end: bool = False) -> Tuple[int, int]:
        """1-based (line, character column) of a node's start or exclusive end."""
        return self.document.char_position(node.end_point if end else node.start_point)

    def type_name(self, node: Optional[Node]) -> Optional[TypeName]:
        """TypeName of a type node; None for primitives, arrays, `var` and anything else."""
        if node is None:
            return None
        if node.type == "annotated_type":
            named = node.named_children
            return self.type_name(named[-1]) if named else None
        segments = self._segments(node)
        if not segments or segments == ["var"]:
            return None
        return TypeName(tuple(segments))

    def _segments(self, node: Node) -> List[str]:
        if node.type == "type_identifier":
            return [self.text(node)]
        if node.type == "generic_type":
            for child in node.named_children:
                if child.type in ("type_identifier", "scoped_type_identifier"):
                    return self._segments(child)
            return []
        if node.type == "scoped_type_identifier":
            out: List[str] = []
            for child in node.named_children:
                if child.type in _TYPE_NAME_NODES:
                    out.extend(self._segments(child))
            return out
        return []


def collect_syntax_errors(document: SourceDocument, root: Node, limit: int = MAX_REPORTED_ERRORS) -> List[str]:
    code = document.encoded()
    errors: List[str] = []
    stack = [root]
    while stack and len(errors) < limit:
        n = stack.pop()
        if n.is_missing:
            line, col = document.char_position(n.start_point)
            errors.append(f"missing `{n.type}` at line {line}, column {col}")
            continue
        if n.type == "ERROR":
            line, col = document.char_position(n.start_point)
            snippet = excerpt(code[n.start_byte:n.end_byte].decode("utf-8", errors="ignore"))
            errors.append(f"syntax error at line {line}, column {col}: `{snippet}`")
            continue
        if n.has_error:
            stack.extend(reversed(n.children))
    if not errors and root.has_error:
        errors.append("syntax error (location unknown)")
    return errors


class JavaSourceParser:
    """One tree-sitter parser; not shared between threads."""

    def __init__(self) -> None:
        self.parser = Parser(JAVA_LANGUAGE)

    def parse(self, document: SourceDocument) -> ParsedSource:
        code = document.encoded()
        tree = self.parser.parse(code)
        root = tree.root_node
        errors = collect_syntax_errors(document, root) if root.has_error else []
        return ParsedSource(document=document, code=code, root=root, errors=errors, tree=tree)
