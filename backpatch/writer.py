"""
Core module: the Writer glues together the stream, the codec and the
placeholders bookkeeping.

A writer can be in one of the following phases

 1. OPEN: accepting writes, reservations and patches
 2. FINALIZING: resolving the derived values
 3. CLOSED: everything has been resolved, the output is complete
 4. ABANDONED: the client gave up (or something failed), the output is garbage

A failed finalize() brings the writer back to OPEN so that it's possible to
patch what was missing and try again.
"""
import io
import logging
import struct
from contextlib import contextmanager
from enum import Enum, auto

from .derive import Resolver
from .endian import Endianess, encode, get_prefix
from .exceptions import (
    AlreadyResolvedException,
    InvalidArgumentException,
    InvalidStateException,
    StreamException,
    UnresolvedPlaceholdersException,
)
from .placeholders import ByteRange, Deferred, PlaceholderKind, PlaceholderRegistry, get_ranges
from .streams import Stream


logger = logging.getLogger(__name__)


class WriterPhase(Enum):
    OPEN       = 0
    FINALIZING = auto()
    CLOSED     = auto()
    ABANDONED  = auto()


class Writer(object):
    """
    Wraps a sink with the operations needed to write structured binary data
    where sizes, offsets and checksums are known only later.

    The byte order given at construction is used for every multi-byte value
    that doesn't indicate its own.

    During writing the sink contains the filler of the placeholders: if it's
    a file on disk other processes can observe them until finalize().
    """

    def __init__(self, sink, endianess=Endianess.LITTLE_ENDIAN, padding=0):
        self.logger = logging.getLogger(__name__)
        get_prefix(endianess)  # validates
        self.endianess = endianess
        self.stream = sink if isinstance(sink, Stream) else Stream(sink)
        self.registry = PlaceholderRegistry(self.stream)
        self.resolver = Resolver(self.registry, self.stream)
        self._phase = WriterPhase.OPEN
        self.padding = 0
        self.set_padding(padding)

    def __repr__(self):
        return '<%s(%s, offset=%#x, outstanding=%d)>' % (
            self.__class__.__name__,
            self._phase.name,
            self.stream.position(),
            len(self.registry),
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            if exc_type is None and self._phase != WriterPhase.ABANDONED:
                try:
                    self.finalize()
                except BaseException:
                    self.abandon()
                    raise
            elif self._phase != WriterPhase.CLOSED:
                self.abandon()
        finally:
            self.stream.close()

        return False

    @property
    def phase(self) -> WriterPhase:
        return self._phase

    def _check_open(self):
        if self.stream.corrupt:
            raise StreamException('the underlying stream is corrupt, the writer can\'t be used anymore')
        if self._phase != WriterPhase.OPEN:
            raise InvalidStateException(f'the writer is {self._phase.name}')

    def _get_endianess(self, endianess):
        return self.endianess if endianess is None else endianess

    def current_offset(self) -> int:
        return self.stream.position()

    tell = current_offset

    def set_padding(self, value: int):
        '''Change the byte used by skip() and align()'''
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xff:
            raise InvalidArgumentException(f'padding must be a byte value, not {value!r}')

        self.padding = value

    def write_int(self, value: int, width: int, endianess=None, signed=False) -> int:
        self._check_open()
        raw = encode(value, width, self._get_endianess(endianess), signed=signed)

        return self.stream.write(raw)

    def write_struct(self, format: str, *values) -> int:
        '''Mimic struct.pack() using the writer byte order, e.g. write_struct('IH', 1, 2)'''
        self._check_open()
        try:
            raw = struct.pack(get_prefix(self.endianess) + format, *values)
        except struct.error as e:
            raise InvalidArgumentException(f'cannot pack {values!r} with format \'{format}\': {e}') from e

        return self.stream.write(raw)

    def write_bytes(self, raw) -> int:
        self._check_open()
        if not isinstance(raw, (bytes, bytearray, memoryview)):
            raise InvalidArgumentException(f'expected a bytes-like object, not {raw.__class__.__name__}')

        return self.stream.write(bytes(raw))

    # so that a writer can be passed where a file object is expected
    write = write_bytes

    def write_cstring(self, text, encoding='ascii') -> int:
        raw = text.encode(encoding) if isinstance(text, str) else bytes(text)
        if b'\x00' in raw:
            raise InvalidArgumentException(f'{text!r} contains a NUL byte')

        return self.write_bytes(raw + b'\x00')

    def skip(self, count: int) -> int:
        self._check_open()
        return self.stream.skip(count, padding=self.padding)

    def align(self, n: int) -> int:
        '''Returns the number of padding bytes written'''
        self._check_open()
        return self.stream.align_to(n, padding=self.padding)

    def reserve_placeholder(self, width: int, endianess=None, initial=0, signed=False):
        '''Reserve "width" bytes at the current offset for a value that the
        client will provide via patch().'''
        self._check_open()
        return self.registry.reserve(width, self._get_endianess(endianess), PlaceholderKind.MANUAL,
                                     initial=initial, signed=signed)

    def deferred(self, width: int, endianess=None, initial=0, signed=False) -> Deferred:
        '''Create a slot for a value known later; nothing is written until
        write_placeholder() is called with it, possibly more than once.'''
        self._check_open()
        return Deferred(width, self._get_endianess(endianess), initial=initial, signed=signed)

    def write_placeholder(self, slot: Deferred):
        '''Reserve a site for "slot" at the current offset. For a slot
        already patched the site receives its final value right away.'''
        self._check_open()
        if not isinstance(slot, Deferred):
            raise InvalidArgumentException(f'expected a deferred slot, not {slot!r}')

        placeholder = self.registry.reserve(slot.width, slot.endianess, PlaceholderKind.MANUAL,
                                            initial=slot.initial, signed=slot.signed)
        slot.placeholders.append(placeholder)

        if slot.resolved:
            self.registry.resolve_manual(placeholder, slot.value)

        return placeholder

    def write_deferred(self, width: int, endianess=None, initial=0, signed=False) -> Deferred:
        slot = self.deferred(width, endianess=endianess, initial=initial, signed=signed)
        self.write_placeholder(slot)

        return slot

    def patch(self, handle, value):
        '''The handle is a placeholder (or its id) or a deferred slot: in
        the latter case all its sites are patched.'''
        self._check_open()
        if isinstance(handle, Deferred):
            return self._patch_deferred(handle, value)

        return self.registry.resolve_manual(handle, value)

    def _patch_deferred(self, slot: Deferred, value):
        if slot.resolved:
            raise AlreadyResolvedException(f'{slot!r} is already resolved', ids=slot.ids)

        # nothing is patched if the value or any of the sites is not valid
        slot.encode(value)
        for placeholder in slot.placeholders:
            self.registry.get(placeholder)

        for placeholder in slot.placeholders:
            self.registry.resolve_manual(placeholder, value)

        slot.value = value
        slot.resolved = True

        self.logger.debug('resolved %r with value %r' % (slot, value))

        return slot

    def reserve_derived(self, width: int, ranges, compute, endianess=None, signed=False):
        '''Reserve "width" bytes whose value will be computed by "compute" at
        finalization from the contents of "ranges" (a list of ByteRange,
        couples or range objects).

        Ranges can cover other placeholders (even derived ones): these are
        going to be resolved first.'''
        self._check_open()
        if not callable(compute):
            raise InvalidArgumentException(f'compute function must be callable, not {compute!r}')

        ranges = get_ranges(ranges)

        placeholder = self.registry.reserve(width, self._get_endianess(endianess), PlaceholderKind.DERIVED,
                                            signed=signed)
        self.resolver.register(placeholder, ranges, compute)

        return placeholder

    def derive(self, ranges, compute):
        '''Compute right now a value from already written ranges, the
        function receives the list of their contents like the ones of
        reserve_derived().'''
        self._check_open()
        ranges = get_ranges(ranges)

        waiting = {_.id for byte_range in ranges for _ in self.registry.overlapping(byte_range)}
        if waiting:
            self.logger.warning('deriving from %r that contains unresolved placeholders %s' % (
                ranges, sorted(waiting)))

        return compute([self.stream.read_range(_.start, len(_)) for _ in ranges])

    @contextmanager
    def subregion(self):
        '''The yielded range is completed with the final offset when the block exits.

            with writer.subregion() as region:
                writer.write_bytes(payload)

            writer.patch(size, len(region))
        '''
        self._check_open()
        region = ByteRange(self.current_offset(), self.current_offset())

        yield region

        region.end = self.current_offset()

    def outstanding(self):
        return self.registry.outstanding()

    def finalize(self):
        '''Resolve all the derived values and check that nothing is left behind.

        It's safe to call it again after a failure.'''
        if self._phase == WriterPhase.CLOSED:
            return

        self._check_open()
        self._phase = WriterPhase.FINALIZING

        try:
            self.resolver.resolve_all()

            outstanding = sorted(self.registry.outstanding())
            if outstanding:
                raise UnresolvedPlaceholdersException(
                    'unresolved placeholders %s' % outstanding, ids=outstanding)

            self.stream.flush()
        except BaseException:
            self._phase = WriterPhase.OPEN
            raise

        self._phase = WriterPhase.CLOSED

        self.logger.debug('finalized %d bytes' % self.stream.position())

    def abandon(self):
        '''The output must not be used: nothing is flushed.'''
        if self._phase == WriterPhase.CLOSED:
            raise InvalidStateException('the writer is already finalized')

        outstanding = self.registry.outstanding()
        if outstanding:
            self.logger.warning('abandoning writer with unresolved placeholders %s' % sorted(outstanding))

        self._phase = WriterPhase.ABANDONED


def write(sink, function, endianess=Endianess.LITTLE_ENDIAN):
    '''Call function(writer) over the sink and finalize the writer when it returns.

    Returns what the function returned.'''
    with Writer(sink, endianess=endianess) as writer:
        result = function(writer)

    return result


def write_le(sink, function):
    return write(sink, function, endianess=Endianess.LITTLE_ENDIAN)


def write_be(sink, function):
    return write(sink, function, endianess=Endianess.BIG_ENDIAN)


def to_bytes(function, endianess=Endianess.LITTLE_ENDIAN) -> bytes:
    '''Like write() but into memory, returning the bytes produced'''
    buffer = io.BytesIO()
    write(buffer, function, endianess=endianess)

    return buffer.getvalue()
