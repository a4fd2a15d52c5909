import io

import pytest

from backpatch.exceptions import (
    InvalidArgumentException,
    OutOfRangeException,
    StreamException,
)
from backpatch.streams import Stream


class BrokenSink(io.BytesIO):
    '''Fails every write after the first "budget" bytes'''

    def __init__(self, budget):
        super().__init__()
        self.budget = budget

    def write(self, data):
        if self.tell() + len(data) > self.budget:
            raise OSError('disk full')
        return super().write(data)


class WriteOnlySink(object):
    '''Something like a pipe: no seek, no read'''

    def __init__(self):
        self.data = b''

    def write(self, data):
        self.data += data
        return len(data)


def test_bytes_stream_appends():
    stream = Stream(b'\x01\x02')

    assert stream.position() == 2

    stream.write(b'\x03')

    assert stream.position() == 3
    assert stream.getvalue() == b'\x01\x02\x03'


def test_file_stream(tmp_path):
    path = tmp_path / 'output.bin'
    stream = Stream(str(path))

    stream.write(b'\x01\x02\x03\x04\x05')
    stream.patch(1, b'\xff')

    assert stream.read_range(0, 5) == b'\x01\xff\x03\x04\x05'

    stream.close()

    assert path.read_bytes() == b'\x01\xff\x03\x04\x05'


def test_align():
    stream = Stream(io.BytesIO())

    stream.write(b'\x01' * 5)

    assert stream.align_to(4) == 3
    assert stream.position() == 8
    assert stream.align_to(4) == 0
    assert stream.align_to(1) == 0
    assert stream.getvalue() == b'\x01' * 5 + b'\x00' * 3

    stream.write(b'\x01')
    stream.align_to(8, padding=0xcc)

    assert stream.getvalue()[9:] == b'\xcc' * 7

    for n in (0, -4, 1.5):
        with pytest.raises(InvalidArgumentException):
            stream.align_to(n)


def test_patch_keeps_position():
    stream = Stream(io.BytesIO())

    stream.write(b'\x00' * 8)
    stream.patch(2, b'\xaa\xbb')

    assert stream.position() == 8

    stream.write(b'\x11')

    assert stream.getvalue() == b'\x00\x00\xaa\xbb\x00\x00\x00\x00\x11'


def test_patch_out_of_extent():
    stream = Stream(io.BytesIO())
    stream.write(b'\x00' * 4)

    with pytest.raises(OutOfRangeException):
        stream.patch(2, b'\x00' * 4)

    with pytest.raises(OutOfRangeException):
        stream.patch(-1, b'\x00')

    assert stream.getvalue() == b'\x00' * 4
    assert stream.position() == 4


def test_read_range():
    stream = Stream(io.BytesIO())
    stream.write(b'abcdef')

    assert stream.read_range(1, 3) == b'bcd'
    assert stream.read_range(6, 0) == b''
    assert stream.position() == 6

    with pytest.raises(OutOfRangeException):
        stream.read_range(4, 3)


def test_not_seekable_sink():
    sink = WriteOnlySink()
    stream = Stream(sink)

    stream.write(b'abc')

    assert stream.position() == 3
    assert sink.data == b'abc'

    with pytest.raises(StreamException):
        stream.patch(0, b'x')

    with pytest.raises(StreamException):
        stream.read_range(0, 1)


def test_not_a_sink():
    with pytest.raises(InvalidArgumentException):
        Stream(object())


def test_write_failure_corrupts():
    stream = Stream(BrokenSink(4))

    stream.write(b'\x00' * 4)

    with pytest.raises(StreamException):
        stream.write(b'\x00')

    assert stream.corrupt

    with pytest.raises(StreamException):
        stream.patch(0, b'\x01')


def test_saved():
    stream = Stream(io.BytesIO())
    stream.write(b'\x00' * 4)

    with stream.saved():
        stream.obj.seek(0)

    assert stream.history == []
    assert stream.obj.tell() == 4


def test_no_seek_outside_saved():
    '''The stream can't be moved away from its write position by hand'''
    stream = Stream(io.BytesIO())
    stream.write(b'\x00' * 4)

    with pytest.raises(AttributeError):
        stream.seek(0)

    with pytest.raises(AttributeError):
        stream.truncate(0)

    stream.write(b'\x01')

    assert stream.position() == 5
    assert stream.getvalue() == b'\x00\x00\x00\x00\x01'


def test_bytearray_stream():
    buffer = bytearray(b'\x01\x02')
    stream = Stream(buffer)

    assert stream.position() == 2

    stream.write(b'\x03\x04')
    stream.patch(0, b'\xff')

    # the caller sees the contents only after a flush
    assert buffer == b'\x01\x02'

    stream.flush()

    assert buffer == b'\xff\x02\x03\x04'
    assert stream.position() == 4
