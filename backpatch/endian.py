"""
Fixed-width integers to/from bytes.

The common widths (1, 2, 4 and 8 bytes) go through the struct module, the
other ones (like the 3 bytes offsets of some formats or 16 bytes identifiers)
are handled by bitstring. Signed integers are the two's complement
reinterpretation of the unsigned encoding.
"""
import struct
import sys
from enum import Enum, auto

from bitstring import Bits

from .exceptions import (
    InvalidArgumentException,
    MalformedInputException,
    ValueOutOfRangeException,
)


class Endianess(Enum):
    LITTLE_ENDIAN = auto()
    BIG_ENDIAN    = auto()
    NETWORK       = auto()
    NATIVE        = auto()


_STRUCT_FORMATS = {
    1: 'B',
    2: 'H',
    4: 'I',
    8: 'Q',
}

_STRUCT_PREFIXES = {
    Endianess.LITTLE_ENDIAN: '<',
    Endianess.BIG_ENDIAN: '>',
    Endianess.NETWORK: '!',
    Endianess.NATIVE: '=',
}


def get_prefix(endianess: Endianess) -> str:
    '''Returns the struct prefix for the given byte order.'''
    try:
        return _STRUCT_PREFIXES[endianess]
    except KeyError:
        raise InvalidArgumentException(f'{endianess!r} is not a valid byte order') from None


def get_format(width: int, endianess: Endianess, signed: bool = False) -> str:
    fmt = _STRUCT_FORMATS[width]
    return get_prefix(endianess) + (fmt.lower() if signed else fmt)


def _bitstring_name(endianess: Endianess, signed: bool) -> str:
    get_prefix(endianess)  # validates
    if endianess == Endianess.NATIVE:
        suffix = 'le' if sys.byteorder == 'little' else 'be'
    elif endianess == Endianess.LITTLE_ENDIAN:
        suffix = 'le'
    else:
        suffix = 'be'

    return ('int' if signed else 'uint') + suffix


def _check_width(width):
    if isinstance(width, bool) or not isinstance(width, int) or width <= 0:
        raise InvalidArgumentException(f'width must be a positive number of bytes, not {width!r}')


def bounds(width: int, signed: bool = False):
    '''Returns the (minimum, maximum) values representable with "width" bytes.'''
    _check_width(width)
    bits = width * 8
    if signed:
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1

    return 0, (1 << bits) - 1


def fits(value: int, width: int, signed: bool = False) -> bool:
    minimum, maximum = bounds(width, signed=signed)
    return minimum <= value <= maximum


def encode(value: int, width: int, endianess: Endianess = Endianess.LITTLE_ENDIAN, signed: bool = False) -> bytes:
    '''Returns exactly "width" bytes representing "value".'''
    _check_width(width)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentException(f'only integers can be encoded, not {value.__class__.__name__}')

    if not fits(value, width, signed=signed):
        minimum, maximum = bounds(width, signed=signed)
        raise ValueOutOfRangeException(
            f'value {value} doesn\'t fit in {width} byte(s) (range is [{minimum}, {maximum}])')

    if width in _STRUCT_FORMATS:
        return struct.pack(get_format(width, endianess, signed=signed), value)

    return Bits(**{_bitstring_name(endianess, signed): value, 'length': width * 8}).bytes


def decode(raw: bytes, width: int, endianess: Endianess = Endianess.LITTLE_ENDIAN, signed: bool = False) -> int:
    _check_width(width)
    if len(raw) != width:
        raise MalformedInputException(f'expected {width} byte(s) but got {len(raw)}')

    if width in _STRUCT_FORMATS:
        return struct.unpack(get_format(width, endianess, signed=signed), raw)[0]

    return getattr(Bits(bytes(raw)), _bitstring_name(endianess, signed))
