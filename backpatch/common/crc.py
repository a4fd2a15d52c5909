'''
Ready made compute functions for derived placeholders.

They all take the list of the contents of the input ranges, like

    writer.reserve_derived(4, [(start, end)], crc.crc32)
'''
import hashlib
from zlib import adler32 as _adler32
from zlib import crc32 as _crc32


def crc32(chunks):
    """standard CRC methods with pre and post conditioning, as defined by ISO 3309 [ISO-3309]
    or ITU-T V.42 [ITU-V42], the one used by PNG and ZIP.

    See <https://www.w3.org/TR/PNG-Structure.html#CRC-algorithm>.
    """
    value = 0
    for chunk in chunks:
        value = _crc32(chunk, value)

    return value


def adler32(chunks):
    value = 1
    for chunk in chunks:
        value = _adler32(chunk, value)

    return value


def sum8(chunks):
    '''Sum of all the bytes modulo 256'''
    return sum(sum(_) for _ in chunks) & 0xff


def digest(name):
    '''Returns a compute function producing the hashlib digest named "name";
    the placeholder must be as wide as the digest.'''
    hashlib.new(name)  # fail early for unknown algorithms

    def _digest(chunks):
        h = hashlib.new(name)
        for chunk in chunks:
            h.update(chunk)

        return h.digest()

    return _digest
