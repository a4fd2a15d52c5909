import io
import logging
from contextlib import contextmanager

from .exceptions import (
    InvalidArgumentException,
    OutOfRangeException,
    StreamException,
)


logger = logging.getLogger(__name__)


class Stream(object):
    '''This is a simple wrapper around bytes/path/file objects to
    uniform their properties: we need to append data, remember where we are
    and be able to go back to patch (or re-read) what was already written
    without losing the position.

    The position is tracked here and not asked to the underlying object, so
    sinks that can't tell() (pipes, sockets wrapped as files) are fine as long
    as nobody needs to patch them.'''
    def __init__(self, obj, flags='w+b'):
        '''Here we normalize the object in order to be accessed as a normal file object'''
        self._type = type(obj)
        self.flags = flags
        self.obj = obj
        self.history = []
        self.corrupt = False
        self._owned = False
        self._target = None

        init_method_name = 'init_%s' % self.obj.__class__.__name__

        init_method = getattr(self, init_method_name, self.init_file)

        init_method()

        self._position = self.obj.tell() if self.seekable else 0
        self._extent = self._find_extent()

        logger.debug('stream over %s starting at offset %d' % (self._type.__name__, self._position))

    def __getattr__(self, name):
        # the position is tracked here, only patch() and read_range() move away from it
        if name in ('seek', 'truncate'):
            raise AttributeError(f'\'{self.__class__.__name__}\' object has no attribute \'{name}\'')
        return getattr(self.obj, name)

    def __repr__(self):
        return '<%s(%s, position=%d)>' % (self.__class__.__name__, self._type.__name__, self._position)

    def init_str(self):
        '''We think this is a path'''
        logger.debug('opening path \'%s\'' % self.obj)
        self.obj = open(self.obj, self.flags)
        self._owned = True

    init_PosixPath = init_str
    init_WindowsPath = init_str

    def init_bytes(self):
        '''We think these are raw bytes: they are the initial contents and
        we append after them'''
        self.obj = io.BytesIO(self.obj)
        self.obj.seek(0, io.SEEK_END)

    def init_bytearray(self):
        '''The bytearray is used like bytes but it belongs to the caller: it
        receives the contents of the stream at every flush()'''
        self._target = self.obj
        self.init_bytes()

    def init_file(self):
        if not hasattr(self.obj, 'write'):
            raise InvalidArgumentException(
                '\'%s\' can\'t be used as a sink since it has no write() method' % self.obj.__class__.__name__)

    def _find_extent(self):
        if not self.seekable:
            return self._position

        end = self.obj.seek(0, io.SEEK_END)
        self.obj.seek(self._position)

        return max(end, self._position)

    @property
    def seekable(self):
        checker = getattr(self.obj, 'seekable', None)
        if checker is not None:
            return checker()

        return hasattr(self.obj, 'seek') and hasattr(self.obj, 'tell')

    @property
    def readable(self):
        checker = getattr(self.obj, 'readable', None)
        if checker is not None:
            return checker()

        return hasattr(self.obj, 'read')

    @property
    def extent(self):
        '''Offset of the end of the written data'''
        return self._extent

    def position(self):
        return self._position

    tell = position

    def _check_usable(self):
        if self.corrupt:
            raise StreamException('the stream is corrupt, it can\'t be used anymore')

    def _fail(self, message, error=None):
        self.corrupt = True
        logger.error(message)
        raise StreamException(message) from error

    def write(self, data):
        self._check_usable()
        try:
            written = self.obj.write(data)
        except OSError as e:
            self._fail('write of %d bytes at offset %d failed: %s' % (len(data), self._position, e), e)

        if written is not None and written != len(data):
            self._fail('short write at offset %d: %d of %d bytes' % (self._position, written, len(data)))

        self._position += len(data)
        self._extent = max(self._extent, self._position)

        return len(data)

    def skip(self, count, padding=0):
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise InvalidArgumentException(f'the number of bytes to skip must be a non negative integer, not {count!r}')

        return self.write(bytes([padding]) * count)

    def align_to(self, n, padding=0):
        '''Pads with the needed amount of bytes to have the position multiple of "n"'''
        if isinstance(n, bool) or not isinstance(n, int) or n <= 0:
            raise InvalidArgumentException(f'alignment must be a positive integer, not {n!r}')

        count = (n - self._position % n) % n

        return self.skip(count, padding=padding)

    def _seek(self, offset):
        self._check_usable()
        if not self.seekable:
            raise StreamException(f'{self._type.__name__} is not seekable')

        if isinstance(offset, bool) or not isinstance(offset, int):
            raise InvalidArgumentException('\'%s\' is the wrong kind of offset to use' % offset.__class__.__name__)

        try:
            self.obj.seek(offset)
        except OSError as e:
            self._fail('seek to offset %d failed: %s' % (offset, e), e)

    def save(self):
        self.history.append(self._position)

    def restore(self):
        old_seek = self.history.pop()
        self._seek(old_seek)

    @contextmanager
    def saved(self):
        '''Every operation done inside this block doesn't change the logical
        position of the stream. If the underlying object fails the stream is
        marked as corrupt and the position is NOT restored.'''
        self.save()
        try:
            yield self
        except OSError as e:
            self.history.pop()
            self._fail('I/O failure away from the write position: %s' % e, e)
        except BaseException:
            self.history.pop()
            raise
        else:
            self.restore()

    def patch(self, offset, data):
        '''Overwrite "data" at "offset": it must be contained in the already
        written part of the stream.'''
        self._check_usable()
        if not self.seekable:
            raise StreamException(f'{self._type.__name__} is not seekable, it\'s not possible to patch it')

        end = offset + len(data)
        if offset < 0 or end > self._extent:
            raise OutOfRangeException(
                f'patch [{offset:#x}, {end:#x}) is outside of the written data [0, {self._extent:#x})')

        logger.debug('patching %d bytes at offset %08x' % (len(data), offset))

        with self.saved():
            self._seek(offset)
            written = self.obj.write(data)
            if written is not None and written != len(data):
                self._fail('short write while patching offset %d: %d of %d bytes' % (offset, written, len(data)))

    def read_range(self, offset, length):
        '''Read back "length" bytes starting from "offset".'''
        self._check_usable()
        if not self.readable or not self.seekable:
            raise StreamException(f'{self._type.__name__} doesn\'t support reading back what was written')

        end = offset + length
        if offset < 0 or length < 0 or end > self._position:
            raise OutOfRangeException(
                f'range [{offset:#x}, {end:#x}) is beyond the write position {self._position:#x}')

        with self.saved():
            self._seek(offset)
            data = self.obj.read(length)
            if data is None or len(data) != length:
                self._fail('short read at offset %d: expected %d bytes' % (offset, length))

        return bytes(data)

    def flush(self):
        if self._target is not None:
            self._target[:] = self.obj.getvalue()

        flush = getattr(self.obj, 'flush', None)
        if flush is None:
            return
        try:
            flush()
        except OSError as e:
            self._fail('flush failed: %s' % e, e)

    def close(self):
        '''Close the underlying object only if it was opened by us.'''
        if self._owned and not self.obj.closed:
            logger.debug('closing %r' % self.obj)
            self.obj.close()
