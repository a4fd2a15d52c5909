"""
# Backpatch: binary formats written in one pass.

A lot of binary formats need, before a block, something that is known only
after the block itself has been written: its size, the offset of a table
placed at the end of the file, a checksum of the data.

Writing them is a two-phase operation:

 1. reserve: while writing forward we leave a placeholder (filled with zeros)
    where the value will end up, and continue writing
 2. resolve: when the value is known we go back and patch the bytes, without
    losing the current position

The value of a placeholder can be provided by the client (a manual
placeholder) or computed from byte ranges already written (a derived
placeholder, like a CRC). Derived placeholders can depend on other
placeholders inside their ranges and are resolved in dependency order at
finalization, that also checks that nothing was forgotten.

    from backpatch.writer import Writer

    with Writer('out.bin') as w:
        w.write_bytes(b'TEST')
        length = w.reserve_placeholder(4)
        with w.subregion() as payload:
            w.write_bytes(b'\\x00' * 10)
        w.patch(length, len(payload))

"""
