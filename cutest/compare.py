"""Comparison engine.

Builtin primitive types are described by a small closed table of
:class:`BuiltinType` tags; anything else is looked up in the custom type
registry. Operands are first converted the way a C assignment to the
declared type would convert them, so ``compare("uint8_t", 256, 0)`` is 0.
"""

import ctypes
import math
import operator
import struct
import sys

from .errors import MissingComparatorError

KIND_INT = "int"
KIND_FLOAT = "float"
KIND_PTR = "ptr"
KIND_STR = "str"

# Largest tolerated distance between two floating values, in representable
# steps, for them to still compare equal.
MAX_ULPS = 4

FLT_EPSILON = 2.0 ** -23
DBL_EPSILON = sys.float_info.epsilon

OPERATORS = {
    "eq": "==",
    "ne": "!=",
    "lt": "<",
    "le": "<=",
    "gt": ">",
    "ge": ">=",
}

_OP_FUNCS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_ORDERING_OPS = ("<", "<=", ">", ">=")

_POINTER_BITS = ctypes.sizeof(ctypes.c_void_p) * 8


def _sign(value):
    if value < 0:
        return -1
    if value > 0:
        return 1
    return 0


class BuiltinType:
    def __init__(self, name, kind, bits=0, signed=False, aliases=()):
        self.name = name
        self.kind = kind
        self.bits = bits
        self.signed = signed
        self.aliases = tuple(aliases)

    def __repr__(self):
        return f"BuiltinType({self.name!r})"

    @property
    def is_char(self):
        return self.kind == KIND_INT and "char" in self.name

    def coerce(self, value):
        if self.kind == KIND_INT:
            return self._coerce_int(value)
        if self.kind == KIND_FLOAT:
            return _to_float32(value) if self.bits == 32 else _to_float64(value)
        if self.kind == KIND_PTR:
            return _to_address(value)
        if isinstance(value, bytearray):
            return bytes(value)
        if value is None or isinstance(value, (str, bytes)):
            return value
        raise TypeError(f"{self.name} operand must be str, bytes or None, not {type(value).__name__}")

    def _coerce_int(self, value):
        if self.is_char and isinstance(value, (str, bytes)) and len(value) == 1:
            value = ord(value)
        value = operator.index(value)
        value &= (1 << self.bits) - 1
        if self.signed and value >> (self.bits - 1):
            value -= 1 << self.bits
        return value

    def compare(self, a, b):
        if self.kind == KIND_FLOAT:
            epsilon = FLT_EPSILON if self.bits == 32 else DBL_EPSILON
            return compare_floating(a, b, self.bits, epsilon)
        if self.kind == KIND_STR:
            return _compare_str(a, b)
        return _sign(a - b)

    def format(self, value):
        if self.kind == KIND_INT:
            if self.is_char and 0x20 <= value < 0x7F:
                return f"{value} ('{chr(value)}')"
            return str(value)
        if self.kind == KIND_FLOAT:
            return "%.9g" % value if self.bits == 32 else "%.17g" % value
        if self.kind == KIND_PTR:
            return "(nil)" if value == 0 else hex(value)
        if value is None:
            return "(null)"
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="backslashreplace")
        return f'"{value}"'


def _int_type(name, ctype, signed, aliases=()):
    return BuiltinType(name, KIND_INT, ctypes.sizeof(ctype) * 8, signed, aliases)


BUILTIN_TYPES = (
    _int_type("char", ctypes.c_byte, True, ("CHAR",)),
    _int_type("signed char", ctypes.c_byte, True, ("DCHAR", "SCHAR")),
    _int_type("unsigned char", ctypes.c_ubyte, False, ("UCHAR",)),
    _int_type("short", ctypes.c_short, True, ("SHORT",)),
    _int_type("unsigned short", ctypes.c_ushort, False, ("USHORT",)),
    _int_type("int", ctypes.c_int, True, ("INT",)),
    _int_type("unsigned int", ctypes.c_uint, False, ("UINT",)),
    _int_type("long", ctypes.c_long, True, ("LONG",)),
    _int_type("unsigned long", ctypes.c_ulong, False, ("ULONG",)),
    _int_type("long long", ctypes.c_longlong, True, ("LONGLONG",)),
    _int_type("unsigned long long", ctypes.c_ulonglong, False, ("ULONGLONG",)),
    BuiltinType("int8_t", KIND_INT, 8, True, ("INT8",)),
    BuiltinType("uint8_t", KIND_INT, 8, False, ("UINT8",)),
    BuiltinType("int16_t", KIND_INT, 16, True, ("INT16",)),
    BuiltinType("uint16_t", KIND_INT, 16, False, ("UINT16",)),
    BuiltinType("int32_t", KIND_INT, 32, True, ("INT32", "D32")),
    BuiltinType("uint32_t", KIND_INT, 32, False, ("UINT32", "U32")),
    BuiltinType("int64_t", KIND_INT, 64, True, ("INT64", "D64")),
    BuiltinType("uint64_t", KIND_INT, 64, False, ("UINT64", "U64")),
    _int_type("size_t", ctypes.c_size_t, False, ("SIZE",)),
    _int_type("ptrdiff_t", ctypes.c_ssize_t, True, ("PTRDIFF",)),
    _int_type("intptr_t", ctypes.c_ssize_t, True, ("INTPTR",)),
    _int_type("uintptr_t", ctypes.c_size_t, False, ("UINTPTR",)),
    BuiltinType("float", KIND_FLOAT, 32, True, ("FLOAT",)),
    BuiltinType("double", KIND_FLOAT, 64, True, ("DOUBLE",)),
    BuiltinType("const void*", KIND_PTR, _POINTER_BITS, False, ("PTR", "void*")),
    BuiltinType("const char*", KIND_STR, 0, False, ("STR", "char*")),
)

def _index_builtins():
    table = {}
    for tag in BUILTIN_TYPES:
        table[tag.name] = tag
        for alias in tag.aliases:
            table[alias] = tag
    return table


_BUILTIN_BY_NAME = _index_builtins()


def builtin_type(type_name):
    return _BUILTIN_BY_NAME.get(type_name)


def is_builtin(type_name):
    return type_name in _BUILTIN_BY_NAME


def _to_float64(value):
    try:
        return float(value)
    except OverflowError:
        # integer too large for a double
        return -math.inf if value < 0 else math.inf


def _to_float32(value):
    try:
        return struct.unpack("<f", struct.pack("<f", float(value)))[0]
    except OverflowError:
        return -math.inf if value < 0 else math.inf


def _to_address(value):
    if value is None:
        return 0
    mask = (1 << _POINTER_BITS) - 1
    try:
        return operator.index(value) & mask
    except TypeError:
        pass
    try:
        return ctypes.cast(value, ctypes.c_void_p).value or 0
    except (TypeError, ctypes.ArgumentError):
        pass
    try:
        return ctypes.addressof(value)
    except TypeError:
        # Plain Python object: its identity is the closest thing to an address.
        return id(value) & mask


def _compare_str(a, b):
    if a is None or b is None:
        if a is b:
            return 0
        return -1 if a is None else 1
    if isinstance(a, str):
        a = a.encode("utf-8")
    if isinstance(b, str):
        b = b.encode("utf-8")
    if a == b:
        return 0
    return -1 if a < b else 1


def _ordered_bits(value, bits):
    """Map a float onto an integer line where adjacent floats differ by 1."""
    if bits == 32:
        raw = struct.unpack("<I", struct.pack("<f", value))[0]
    else:
        raw = struct.unpack("<Q", struct.pack("<d", value))[0]
    sign_bit = 1 << (bits - 1)
    if raw & sign_bit:
        return -(raw & (sign_bit - 1))
    return raw


def ulp_distance(a, b, bits=64):
    return abs(_ordered_bits(a, bits) - _ordered_bits(b, bits))


def compare_floating(a, b, bits=64, epsilon=DBL_EPSILON):
    """Tolerant three-way comparison of two IEEE-754 values.

    NaN is unequal to everything, itself included. Infinities only equal an
    infinity of the same sign. Finite values are equal when they are within a
    relative ``epsilon`` of each other or at most ``MAX_ULPS`` apart.
    """
    if math.isnan(a) or math.isnan(b):
        return 1 if math.isnan(a) else -1
    if math.isinf(a) or math.isinf(b):
        if a == b:
            return 0
        return -1 if a < b else 1
    if a == b:
        return 0
    if abs(a - b) <= epsilon * max(abs(a), abs(b)):
        return 0
    if ulp_distance(a, b, bits) <= MAX_ULPS:
        return 0
    return -1 if a < b else 1


class CustomType:
    """Adapter presenting a registered TypeDescriptor like a builtin tag."""

    kind = "custom"

    def __init__(self, descriptor):
        self.descriptor = descriptor
        self.name = descriptor.type_name

    def coerce(self, value):
        return value

    def compare(self, a, b):
        return _sign(self.descriptor.compare(a, b))

    def dump(self, sink, value):
        written = self.descriptor.dump(sink, value)
        return 0 if written is None else written


def resolve(type_name, types=None):
    """Return the handler for ``type_name``.

    Builtins take precedence over registered types. A name that is neither
    builtin nor registered raises :class:`MissingComparatorError`.
    """
    tag = _BUILTIN_BY_NAME.get(type_name)
    if tag is not None:
        return tag
    if types is None:
        from .registry import default_registry
        types = default_registry().types
    descriptor = types.find(type_name)
    if descriptor is None:
        raise MissingComparatorError(type_name)
    return CustomType(descriptor)


def compare(type_name, a, b, types=None):
    handler = resolve(type_name, types)
    return handler.compare(handler.coerce(a), handler.coerce(b))


def evaluate(handler, op, a, b):
    """Apply ``op`` to two already coerced operands."""
    func = _OP_FUNCS[op]
    if op in _ORDERING_OPS and handler.kind == KIND_FLOAT:
        return func(a, b)
    return func(handler.compare(a, b), 0)


def dump_value(sink, handler, value):
    if isinstance(handler, CustomType):
        return handler.dump(sink, value)
    text = handler.format(value)
    sink.write(text)
    return len(text)


def dump(sink, type_name, value, types=None):
    handler = resolve(type_name, types)
    return dump_value(sink, handler, handler.coerce(value))
