"""
Bookkeeping of the reserved (and not yet final) slots of a stream.

Every reservation happens at the end of the stream so that the slots never
overlap; a slot is removed from the registry as soon as its final value has
been patched in.
"""
import logging
from enum import Enum, auto
from typing import Dict, List, Optional, Set

from .endian import Endianess, encode
from .exceptions import (
    AlreadyResolvedException,
    InvalidArgumentException,
    UnknownPlaceholderException,
    ValueOutOfRangeException,
)


logger = logging.getLogger(__name__)


class PlaceholderKind(Enum):
    '''Who is responsible for providing the final value'''
    MANUAL  = auto()
    DERIVED = auto()


class ByteRange(object):
    '''Half-open interval [start, end) of offsets into the stream.'''

    def __init__(self, start: int, end: int):
        for name, value in (('start', start), ('end', end)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidArgumentException(f'{name} must be an integer, not {value!r}')
        if start < 0 or end < start:
            raise InvalidArgumentException(f'[{start}, {end}) is not a valid range')

        self.start = start
        self.end = end

    @classmethod
    def create(cls, obj) -> "ByteRange":
        '''Accepts a ByteRange, a couple (start, end) or a range(start, end).'''
        if isinstance(obj, cls):
            return obj

        if isinstance(obj, range):
            if obj.step != 1:
                raise InvalidArgumentException(f'{obj!r} must have step 1 to be used as byte range')
            return cls(obj.start, obj.stop)

        if isinstance(obj, tuple) and len(obj) == 2:
            return cls(*obj)

        raise InvalidArgumentException(f'\'{obj.__class__.__name__}\' can\'t be used as a byte range')

    def __len__(self):
        return self.end - self.start

    def __eq__(self, other):
        if isinstance(other, ByteRange):
            return (self.start, self.end) == (other.start, other.end)
        if isinstance(other, tuple):
            return (self.start, self.end) == other

        return NotImplemented

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.start:#x}, {self.end:#x})>'

    def overlaps(self, start: int, end: int) -> bool:
        if start == end or self.start == self.end:
            return False

        return start < self.end and self.start < end


def get_ranges(ranges) -> List[ByteRange]:
    '''Normalize a single range or a list of them into a list of ByteRange.'''
    if isinstance(ranges, (ByteRange, range)):
        ranges = [ranges]
    elif isinstance(ranges, tuple) and len(ranges) == 2 and all(isinstance(_, int) for _ in ranges):
        ranges = [ranges]

    return [ByteRange.create(_) for _ in ranges]


class Placeholder(object):
    '''A reserved slot. The instance is also the handle returned to the client.'''

    def __init__(self, id: int, offset: int, width: int, endianess: Endianess, kind: PlaceholderKind, signed=False):
        self.id = id
        self.offset = offset
        self.width = width
        self.endianess = endianess
        self.kind = kind
        self.signed = signed
        self.resolved = False
        self.value = None

    def __repr__(self):
        return '<%s(id=%d, kind=%s, offset=%#x, width=%d%s)>' % (
            self.__class__.__name__,
            self.id,
            self.kind.name,
            self.offset,
            self.width,
            ', resolved' if self.resolved else '',
        )

    @property
    def end(self) -> int:
        return self.offset + self.width

    @property
    def range(self) -> ByteRange:
        return ByteRange(self.offset, self.end)

    def overlaps(self, byte_range: ByteRange) -> bool:
        return byte_range.overlaps(self.offset, self.end)

    def encode(self, value) -> bytes:
        '''bytes are taken as they are (but must have the right length),
        integers are encoded with the declared width and byte order.'''
        if isinstance(value, (bytes, bytearray, memoryview)):
            raw = bytes(value)
            if len(raw) != self.width:
                raise ValueOutOfRangeException(
                    f'{len(raw)} byte(s) value for a placeholder of width {self.width}', ids=(self.id,))
            return raw

        try:
            return encode(value, self.width, self.endianess, signed=self.signed)
        except ValueOutOfRangeException as e:
            raise ValueOutOfRangeException(str(e), ids=(self.id,)) from None


class Deferred(object):
    '''A value that can appear at several places of the stream, or at none
    yet. Each site is an ordinary manual placeholder; the slot only
    remembers them so that they can be resolved together.'''

    def __init__(self, width: int, endianess: Endianess, initial=0, signed=False):
        encode(initial, width, endianess, signed=signed)  # validates

        self.width = width
        self.endianess = endianess
        self.initial = initial
        self.signed = signed
        self.placeholders: List[Placeholder] = []
        self.resolved = False
        self.value = None

    def __repr__(self):
        return '<%s(width=%d, sites=%s%s)>' % (
            self.__class__.__name__,
            self.width,
            [_.offset for _ in self.placeholders],
            ', resolved' if self.resolved else '',
        )

    @property
    def ids(self):
        return tuple(_.id for _ in self.placeholders)

    def encode(self, value) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            raw = bytes(value)
            if len(raw) != self.width:
                raise ValueOutOfRangeException(
                    f'{len(raw)} byte(s) value for a slot of width {self.width}', ids=self.ids)
            return raw

        try:
            return encode(value, self.width, self.endianess, signed=self.signed)
        except ValueOutOfRangeException as e:
            raise ValueOutOfRangeException(str(e), ids=self.ids) from None


class PlaceholderRegistry(object):

    def __init__(self, stream):
        self.logger = logging.getLogger(__name__)
        self.stream = stream
        self._entries: Dict[int, Placeholder] = {}
        self._resolved: Dict[int, Placeholder] = {}
        self._next_id = 0

    def __contains__(self, id):
        return id in self._entries

    def __len__(self):
        return len(self._entries)

    def reserve(self, width: int, endianess: Endianess, kind: PlaceholderKind, initial=0, signed=False) -> Placeholder:
        '''Write the filler for a new slot at the current position.'''
        placeholder = Placeholder(self._next_id, self.stream.position(), width, endianess, kind, signed=signed)
        filler = encode(initial, width, endianess, signed=signed)  # also validates width

        self.stream.write(filler)

        self._next_id += 1
        self._entries[placeholder.id] = placeholder

        self.logger.debug('reserved %r' % placeholder)

        return placeholder

    def get(self, id) -> Placeholder:
        '''Returns the outstanding placeholder with the given id (or handle).'''
        handle = id if isinstance(id, Placeholder) else None
        if handle is not None:
            id = handle.id
            if handle is not self._entries.get(id) and handle is not self._resolved.get(id):
                raise UnknownPlaceholderException(f'{handle!r} belongs to another writer', ids=(id,))

        if id in self._resolved:
            raise AlreadyResolvedException(f'placeholder {id} is already resolved', ids=(id,))

        placeholder = self._entries.get(id)

        if placeholder is None:
            raise UnknownPlaceholderException(f'placeholder {id!r} is not registered', ids=(id,))

        return placeholder

    def _resolve(self, placeholder: Placeholder, value) -> Placeholder:
        raw = placeholder.encode(value)

        self.stream.patch(placeholder.offset, raw)

        placeholder.value = value
        placeholder.resolved = True
        del self._entries[placeholder.id]
        self._resolved[placeholder.id] = placeholder

        self.logger.debug('resolved %r with value %r' % (placeholder, value))

        return placeholder

    def resolve_manual(self, id, value) -> Placeholder:
        placeholder = self.get(id)

        if placeholder.kind != PlaceholderKind.MANUAL:
            raise InvalidArgumentException(
                f'placeholder {placeholder.id} is derived, its value is computed at finalization',
                ids=(placeholder.id,))

        return self._resolve(placeholder, value)

    def resolve_derived(self, id, value) -> Placeholder:
        placeholder = self.get(id)

        if placeholder.kind != PlaceholderKind.DERIVED:
            raise InvalidArgumentException(f'placeholder {placeholder.id} is not derived', ids=(placeholder.id,))

        return self._resolve(placeholder, value)

    def pending(self, kind: Optional[PlaceholderKind] = None) -> List[Placeholder]:
        '''Outstanding placeholders in order of reservation.'''
        return [_ for _ in self._entries.values() if kind is None or _.kind == kind]

    def outstanding(self) -> Set[int]:
        return set(self._entries)

    def overlapping(self, byte_range: ByteRange) -> List[Placeholder]:
        '''Outstanding placeholders with at least one byte inside "byte_range".'''
        return [_ for _ in self._entries.values() if _.overlaps(byte_range)]
