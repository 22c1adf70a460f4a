"""
Reference resolver: decompiled source -> link table.

Walks the tree-sitter tree once with an explicit stack. Scope frames and the
enclosing-class chain are pushed on entry to a node and popped by an exit
marker scheduled behind its children, so every lookup sees exactly the
declarations in scope at that point.

Two reference sites produce links:
  - type references (any class/interface name used as a type)
  - method-call names, resolved through the receiver expression

A link is produced only when exactly one candidate class exists in the
corpus. Everything else (no hit, several hits, unsupported receivers,
positions outside the document, unexpected faults) drops that one reference
and the walk continues.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from tree_sitter import Node

from . import bindings as decl
from .bindings import ImportTable, ScopeStack
from .classfile import ClassFormatError, MethodInfo, decode_return_type
from .config import XrefConfig
from .corpus import ROOT_CLASS, ClassCorpus
from .java_ast import NodeKind, ParsedSource, TypeName, classify
from .links import LinkTable, SymbolLink
from .offsets import OutOfRange
from .resolution import Ambiguous, Resolution, Resolved, Unresolved, Unsupported, describe

logger = logging.getLogger(__name__)

JAVA_LANG = "java/lang/"
STRING_CLASS = "java/lang/String"

_MEMBER_BODIES = ("class_body", "interface_body", "enum_body_declarations", "annotation_type_body")


@dataclass(frozen=True)
class ClassContext:
    """An enclosing class; both names are None inside anonymous and local classes."""

    internal_name: Optional[str]
    simple_name: Optional[str]


_UNKNOWN_CLASS = ClassContext(None, None)


@dataclass(frozen=True)
class _Exit:
    frames: int = 0
    classes: int = 0


def _dedupe(names: List[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for n in names:
        if n and n not in seen:
            seen.add(n)
            out.append(n)
    return out


def _unwrap_parens(node: Node) -> Node:
    while node.type == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    return node


class ReferenceResolver:
    def __init__(
        self,
        corpus: ClassCorpus,
        parsed: ParsedSource,
        *,
        config: Optional[XrefConfig] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.corpus = corpus
        self.parsed = parsed
        self.document = parsed.document
        self.config = config or XrefConfig()
        self.is_cancelled = is_cancelled or (lambda: False)

        self.imports = ImportTable.from_source(parsed)
        self.offsets = self.document.offset_index()
        self.links = LinkTable()
        self.scopes = ScopeStack()
        self.classes: List[ClassContext] = []
        self.stats: Counter = Counter()
        self.cancelled = False

        self._calls: Dict[Tuple[int, int], Resolution] = {}

    # ---------------------------------------------------------------------
    # Driver
    # ---------------------------------------------------------------------
    def resolve(self) -> LinkTable:
        if self.config.link_imports:
            for d in self.imports.declarations:
                self._guarded(self._link_import, d)

        for top in self.parsed.root.children:
            if self.is_cancelled():
                self.cancelled = True
                break
            self._walk(top)
        return self.links

    def _walk(self, start: Node) -> None:
        stack: List = [start]
        while stack:
            item = stack.pop()
            if isinstance(item, _Exit):
                for _ in range(item.frames):
                    self.scopes.pop()
                for _ in range(item.classes):
                    self.classes.pop()
                continue

            node: Node = item
            kind = classify(node)
            if kind in (NodeKind.IMPORT, NodeKind.PACKAGE):
                continue

            exit_marker = self._enter(node, kind)
            if exit_marker is not None:
                stack.append(exit_marker)
            stack.extend(reversed(node.children))

    def _enter(self, node: Node, kind: NodeKind) -> Optional[_Exit]:
        """Apply a node's scope effects and handle reference sites."""
        parsed = self.parsed
        if kind is NodeKind.TYPE_DECLARATION:
            self.classes.append(self._class_context(node))
            self.scopes.push("class")
            self.scopes.bind_all(decl.member_fields(parsed, node))
            return _Exit(frames=1, classes=1)
        if kind is NodeKind.ANONYMOUS_CLASS_BODY:
            self.classes.append(_UNKNOWN_CLASS)
            self.scopes.push("class")
            self.scopes.bind_all(decl.body_fields(parsed, node))
            return _Exit(frames=1, classes=1)
        if kind is NodeKind.METHOD:
            self.scopes.push("method")
            self.scopes.bind_all(decl.formal_parameters(parsed, node.child_by_field_name("parameters")))
            return _Exit(frames=1)
        if kind is NodeKind.LAMBDA:
            self.scopes.push("lambda")
            self.scopes.bind_all(decl.lambda_parameters(parsed, node))
            return _Exit(frames=1)
        if kind in (NodeKind.BLOCK, NodeKind.FOR, NodeKind.TRY_WITH_RESOURCES):
            self.scopes.push(kind.value)
            return _Exit(frames=1)
        if kind is NodeKind.ENHANCED_FOR:
            self.scopes.push("for")
            self.scopes.bind_all(decl.enhanced_for_variable(parsed, node))
            return _Exit(frames=1)
        if kind is NodeKind.CATCH:
            self.scopes.push("catch")
            self.scopes.bind_all(decl.catch_parameter(parsed, node))
            return _Exit(frames=1)
        if kind is NodeKind.RESOURCE:
            self.scopes.bind_all(decl.resource_variable(parsed, node))
        elif kind is NodeKind.LOCAL_DECLARATION:
            # bound before the initializers are walked: a local is in scope in its own initializer
            self.scopes.bind_all(decl.variable_declarations(parsed, node))
        elif kind is NodeKind.TYPE_REFERENCE:
            self._guarded(self._link_type, node)
        elif kind is NodeKind.METHOD_CALL:
            self._guarded(self._link_call, node)
        return None

    def _guarded(self, fn: Callable, arg) -> None:
        try:
            fn(arg)
        except OutOfRange as e:
            self.stats["out_of_range"] += 1
            logger.debug("reference outside document: %s", e)
        except Exception:
            self.stats["errors"] += 1
            logger.debug("failed to resolve reference in %s", self.document.owner_internal_name, exc_info=True)

    # ---------------------------------------------------------------------
    # Link emission
    # ---------------------------------------------------------------------
    def _emit(self, node: Node, res: Resolution, kind: str) -> None:
        if not isinstance(res, Resolved):
            self.stats[type(res).__name__.lower()] += 1
            logger.debug("%s `%s` line %d: %s", kind, self.parsed.text(node), node.start_point[0] + 1, describe(res))
            return
        start = self.parsed.position(node)
        end = self.parsed.position(node, end=True)
        start_offset, end_offset = self.offsets.span(start, end)
        self.links.append(
            SymbolLink(
                start_offset=start_offset,
                end_offset=end_offset,
                source_line=start[0],
                source_column=start[1],
                target_archive_id=res.archive_id,
                target_internal_class_name=res.internal_name,
                target_anchor=res.anchor,
                kind=kind,
            )
        )
        self.stats["links"] += 1

    def _link_import(self, d: decl.ImportDeclaration) -> None:
        if d.static or d.wildcard:
            return
        self._emit(d.node, self._probe(decl.nested_forms(d.internal_name)), "import")

    def _link_type(self, node: Node) -> None:
        name = self.parsed.type_name(node)
        if name is None:
            return
        self._emit(node, self.resolve_type_name(name), "type")

    def _link_call(self, node: Node) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        self._emit(name_node, self.resolve_call(node), "method")

    # ---------------------------------------------------------------------
    # Candidates and corpus probing
    # ---------------------------------------------------------------------
    def _probe(self, candidates: List[str], anchor: Optional[str] = None) -> Resolution:
        hits: List[Tuple[str, str]] = []
        for c in _dedupe(candidates):
            archive_id = self.corpus.lookup_archive(c, prefer=self.document.archive_id)
            if archive_id is not None:
                hits.append((c, archive_id))
        if not hits:
            return Unresolved("no candidate loaded: " + ", ".join(_dedupe(candidates)))
        if len(hits) > 1:
            return Ambiguous(tuple(c for c, _ in hits))
        internal_name, archive_id = hits[0]
        return Resolved(archive_id, internal_name, anchor=anchor)

    def type_candidates(self, name: TypeName) -> List[str]:
        out: List[str] = []
        for b in self.imports.bindings:
            if b.simple_name == name.simple:
                out.extend(b.candidates)
            if name.is_dotted and b.simple_name == name.root:
                out.extend(c + "$" + "$".join(name.segments[1:]) for c in b.candidates)
        out.append(JAVA_LANG + name.simple)
        return _dedupe(out)

    def secondary_type_candidates(self, name: TypeName) -> List[str]:
        """Member types of enclosing classes, same package, fully-qualified form."""
        out: List[str] = []
        for ctx in reversed(self.classes):
            if ctx.internal_name:
                out.append(ctx.internal_name + "$" + name.nested)
        out.append(self.document.package_prefix + name.nested)
        if name.is_dotted:
            out.append("/".join(name.segments))
        return _dedupe(out)

    def resolve_type_name(self, name: TypeName) -> Resolution:
        res = self._probe(self.type_candidates(name), anchor=name.simple)
        # an explicit import of the root name always wins over the secondary tier
        if isinstance(res, Unresolved) and not self.imports.bindings_for(name.root):
            res = self._probe(self.secondary_type_candidates(name), anchor=name.simple)
        return res

    # ---------------------------------------------------------------------
    # Method calls
    # ---------------------------------------------------------------------
    def resolve_call(self, node: Node, depth: int = 0) -> Resolution:
        key = (node.start_byte, node.end_byte)
        if key not in self._calls:
            self._calls[key] = self._resolve_call(node, depth)
        return self._calls[key]

    def _resolve_call(self, node: Node, depth: int) -> Resolution:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return Unsupported("call without a name")
        method_name = self.parsed.text(name_node)
        obj = node.child_by_field_name("object")
        if obj is None and method_name in self.imports.static_members:
            return self._bare_static_call(method_name)
        owner = self._receiver_class(obj, depth)
        if not isinstance(owner, Resolved):
            return owner
        return self._locate_method(owner, method_name)

    def _bare_static_call(self, method_name: str) -> Resolution:
        """`m()` under `import static X.m`: a method of the enclosing class chain shadows the import."""
        enclosing = self._receiver_class(None, 0)
        if isinstance(enclosing, Resolved):
            declaring = self._declaring_class(enclosing, method_name)
            if declaring is not None:
                return declaring
        owners = self.imports.static_members[method_name]
        owner = self._probe([c for o in owners for c in decl.nested_forms(o)])
        if not isinstance(owner, Resolved):
            return owner
        return self._locate_method(owner, method_name)

    def _enclosing(self) -> ClassContext:
        return self.classes[-1] if self.classes else _UNKNOWN_CLASS

    def _receiver_class(self, obj: Optional[Node], depth: int) -> Resolution:
        if obj is None or obj.type == "this":
            ctx = self._enclosing()
            if ctx.internal_name is None:
                return Unresolved("enclosing class unknown")
            return self._probe([ctx.internal_name])

        if obj.type == "super":
            return self._super_class()

        if obj.type == "identifier":
            return self._simple_receiver(self.parsed.text(obj))

        if obj.type == "method_invocation":
            if depth >= self.config.max_chain_depth:
                return Unsupported("call chain too deep")
            inner = self.resolve_call(obj, depth + 1)
            if not isinstance(inner, Resolved):
                return Unresolved("receiver call unresolved")
            if inner.return_type is None:
                return Unresolved("receiver call has no further type")
            return self._probe([inner.return_type])

        if obj.type == "parenthesized_expression":
            inner_expr = _unwrap_parens(obj)
            if inner_expr.type != "cast_expression":
                return Unsupported("parenthesized receiver without a cast")
            name = self.parsed.type_name(inner_expr.child_by_field_name("type"))
            if name is None:
                return Unsupported("cast to a non-class type")
            return self.resolve_type_name(name)

        if obj.type == "object_creation_expression":
            name = self.parsed.type_name(obj.child_by_field_name("type"))
            if name is None:
                return Unsupported("instance creation of unknown type")
            return self.resolve_type_name(name)

        if obj.type == "string_literal":
            return self._probe([STRING_CLASS])

        if obj.type == "field_access":
            # a.b.m(): a.b is either a field chain or a package-qualified name
            return Unsupported("field access receiver")

        return Unsupported(f"{obj.type} receiver")

    def _super_class(self) -> Resolution:
        ctx = self._enclosing()
        if ctx.internal_name is None:
            return Unresolved("enclosing class unknown")
        archive_id = self.corpus.lookup_archive(ctx.internal_name, prefer=self.document.archive_id)
        if archive_id is None:
            return Unresolved(f"{ctx.internal_name} not loaded")
        structure = self.corpus.class_structure(archive_id, ctx.internal_name)
        if structure is None or not structure.super_internal_name:
            return Unresolved(f"no superclass metadata for {ctx.internal_name}")
        return self._probe([structure.super_internal_name])

    def _simple_receiver(self, name: str) -> Resolution:
        # variables obscure types: the nearest local/parameter/field wins outright
        local = self.scopes.lookup(name)
        if local is not None:
            if local.declared_type is None:
                return Unresolved(f"declared type of `{name}` unknown")
            return self.resolve_type_name(local.declared_type)

        for ctx in reversed(self.classes):
            if ctx.simple_name == name and ctx.internal_name:
                return self._probe([ctx.internal_name])

        imported = self.imports.bindings_for(name)
        if imported:
            return self._probe([c for b in imported for c in b.candidates])

        res = self._probe([JAVA_LANG + name])
        if isinstance(res, Unresolved):
            res = self._probe(self.secondary_type_candidates(TypeName((name,))))
        return res

    def _locate_method(self, owner: Resolved, method_name: str) -> Resolution:
        declaring = self._declaring_class(owner, method_name)
        if declaring is not None:
            return declaring
        # declaring class not found: link the statically inferred class, no further type
        return Resolved(owner.archive_id, owner.internal_name, anchor=method_name)

    def _declaring_class(self, owner: Resolved, method_name: str) -> Optional[Resolved]:
        """Walk the superclass chain from *owner* to the class declaring *method_name*."""
        archive_id, internal_name = owner.archive_id, owner.internal_name
        seen = set()
        while internal_name not in seen:
            seen.add(internal_name)
            structure = self.corpus.class_structure(archive_id, internal_name)
            if structure is None:
                break
            methods = structure.methods_named(method_name)
            if methods:
                return Resolved(archive_id, internal_name, anchor=method_name, return_type=_return_type(methods))
            if internal_name == ROOT_CLASS or not structure.super_internal_name:
                break
            internal_name = structure.super_internal_name
            next_archive = self.corpus.lookup_archive(internal_name, prefer=self.document.archive_id)
            if next_archive is None:
                break
            archive_id = next_archive
        return None

    # ---------------------------------------------------------------------
    # Enclosing classes
    # ---------------------------------------------------------------------
    def _class_context(self, node: Node) -> ClassContext:
        name_node = node.child_by_field_name("name")
        name = self.parsed.text(name_node) if name_node is not None else ""
        if not name:
            return _UNKNOWN_CLASS
        parent = node.parent.type if node.parent is not None else ""
        if parent == "program":
            owner = self.document.owner_simple_name
            if name == owner or owner.endswith("$" + name):
                return ClassContext(self.document.owner_internal_name, name)
            return ClassContext(self.document.package_prefix + name, name)
        outer = self._enclosing()
        if parent in _MEMBER_BODIES and outer.internal_name:
            return ClassContext(outer.internal_name + "$" + name, name)
        # local class, or a member of an anonymous class: binary name not derivable
        return ClassContext(None, name)


def _return_type(methods: List[MethodInfo]) -> Optional[str]:
    """Object return type shared by all overloads, else None."""
    types = set()
    for m in methods:
        try:
            types.add(decode_return_type(m.descriptor))
        except ClassFormatError:
            return None
    return types.pop() if len(types) == 1 else None
