"""
Minimal class-file reader: just enough structure for cross-referencing.

Reads the constant pool, this/super class and the method table. Fields,
attributes and code are skipped.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

MAGIC = 0xCAFEBABE

# constant pool tag -> fixed payload size (Utf8 is variable)
_CP_SIZES = {
    3: 4,   # Integer
    4: 4,   # Float
    5: 8,   # Long
    6: 8,   # Double
    7: 2,   # Class
    8: 2,   # String
    9: 4,   # Fieldref
    10: 4,  # Methodref
    11: 4,  # InterfaceMethodref
    12: 4,  # NameAndType
    15: 3,  # MethodHandle
    16: 2,  # MethodType
    17: 4,  # Dynamic
    18: 4,  # InvokeDynamic
    19: 2,  # Module
    20: 2,  # Package
}


class ClassFormatError(ValueError):
    pass


@dataclass(frozen=True)
class MethodInfo:
    name: str
    descriptor: str


@dataclass(frozen=True)
class ClassStructure:
    internal_name: str
    super_internal_name: Optional[str]
    methods: Tuple[MethodInfo, ...] = ()

    def methods_named(self, name: str) -> List[MethodInfo]:
        return [m for m in self.methods if m.name == name]


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, fmt: str):
        try:
            values = struct.unpack_from(fmt, self.data, self.pos)
        except struct.error as e:
            raise ClassFormatError(f"truncated class file at byte {self.pos}") from e
        self.pos += struct.calcsize(fmt)
        return values[0] if len(values) == 1 else values

    def skip(self, n: int) -> None:
        if self.pos + n > len(self.data):
            raise ClassFormatError(f"truncated class file at byte {self.pos}")
        self.pos += n

    def raw(self, n: int) -> bytes:
        start = self.pos
        self.skip(n)
        return self.data[start:self.pos]


def _read_constant_pool(r: _Reader) -> Tuple[Dict[int, str], Dict[int, int]]:
    """Returns (utf8 entries by index, class entries -> name index)."""
    count = r.take(">H")
    utf8: Dict[int, str] = {}
    classes: Dict[int, int] = {}
    idx = 1
    while idx < count:
        tag = r.take(">B")
        if tag == 1:
            length = r.take(">H")
            # modified UTF-8; good enough for names and descriptors
            utf8[idx] = r.raw(length).decode("utf-8", errors="replace")
        elif tag == 7:
            classes[idx] = r.take(">H")
        elif tag in _CP_SIZES:
            r.skip(_CP_SIZES[tag])
        else:
            raise ClassFormatError(f"unknown constant pool tag {tag} at index {idx}")
        # Long and Double take two slots
        idx += 2 if tag in (5, 6) else 1
    return utf8, classes


def _skip_attributes(r: _Reader) -> None:
    for _ in range(r.take(">H")):
        r.skip(2)
        r.skip(r.take(">I"))


def read_class_structure(data: bytes) -> ClassStructure:
    r = _Reader(data)
    if r.take(">I") != MAGIC:
        raise ClassFormatError("bad magic")
    r.skip(4)  # minor, major

    utf8, classes = _read_constant_pool(r)

    def class_name(index: int) -> Optional[str]:
        if index == 0:
            return None
        if index not in classes or classes[index] not in utf8:
            raise ClassFormatError(f"bad class reference #{index}")
        return utf8[classes[index]]

    def utf(index: int) -> str:
        if index not in utf8:
            raise ClassFormatError(f"bad utf8 reference #{index}")
        return utf8[index]

    r.skip(2)  # access flags
    this_name = class_name(r.take(">H"))
    super_name = class_name(r.take(">H"))
    r.skip(2 * r.take(">H"))  # interfaces

    for _ in range(r.take(">H")):  # fields
        r.skip(6)
        _skip_attributes(r)

    methods: List[MethodInfo] = []
    for _ in range(r.take(">H")):
        _, name_idx, desc_idx = r.take(">HHH")
        methods.append(MethodInfo(name=utf(name_idx), descriptor=utf(desc_idx)))
        _skip_attributes(r)

    if not this_name:
        raise ClassFormatError("missing this_class")
    return ClassStructure(internal_name=this_name, super_internal_name=super_name, methods=tuple(methods))


def decode_return_type(descriptor: str) -> Optional[str]:
    """
    Internal name of a method descriptor's object return type.

    "(I)Ljava/lang/String;" -> "java/lang/String". Void, primitive and array
    returns give None: there is no class to continue a call chain on.
    """
    close = (descriptor or "").rfind(")")
    if close == -1:
        raise ClassFormatError(f"not a method descriptor: {descriptor!r}")
    ret = descriptor[close + 1:]
    if ret.startswith("L") and ret.endswith(";") and len(ret) > 2:
        return ret[1:-1]
    return None
