"""
Tests for Serial Transport

Framed reads over an in-memory StreamReader; no serial hardware involved.
"""

import asyncio
import re

import pytest

from flipper_totp.devices.transport import (
    ReadTimeoutError,
    SerialTransport,
    TransportClosedError,
    find_terminator
)


class RecordingWriter:
    """Minimal StreamWriter stand-in"""

    def __init__(self):
        self.data = b""
        self.drained = 0
        self.closed = False

    def write(self, data):
        self.data += data

    async def drain(self):
        self.drained += 1

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


def make_transport(*chunks, writer=None):
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    return SerialTransport(reader, writer, path="/dev/ttyACM0"), reader


class TestFindTerminator:
    """Test terminator search"""

    def test_literal(self):
        assert find_terminator("abc>: rest", ">: ") == 6

    def test_literal_missing(self):
        assert find_terminator("abc", ">: ") is None

    def test_pattern(self):
        assert find_terminator("one\r\nCancelled by user", re.compile("cancelled", re.I)) == 14


class TestReadUntil:
    """Test read_until framing"""

    def test_reads_through_literal_terminator(self):
        async def scenario():
            transport, _ = make_transport(b"hello\r\n>: ")
            return await transport.read_until(">: ", timeout=1)

        assert asyncio.run(scenario()) == "hello\r\n>: "

    def test_keeps_data_after_match_for_next_read(self):
        async def scenario():
            transport, _ = make_transport(b"echo\r\nbody\r\n>: ")
            first = await transport.read_until("\r\n", timeout=1)
            second = await transport.read_until(">: ", timeout=1)
            return first, second

        assert asyncio.run(scenario()) == ("echo\r\n", "body\r\n>: ")

    def test_pattern_terminator_across_chunks(self):
        async def scenario():
            transport, reader = make_transport(b"line\r\n>")

            async def feed_rest():
                await asyncio.sleep(0.01)
                reader.feed_data(b": ")

            asyncio.get_running_loop().create_task(feed_rest())
            return await transport.read_until(re.compile(r">: "), timeout=1)

        assert asyncio.run(scenario()) == "line\r\n>: "

    def test_multibyte_character_split_between_chunks(self):
        async def scenario():
            encoded = "Zürich>: ".encode("utf-8")
            split = encoded.index(b"\xc3") + 1
            transport, _ = make_transport(encoded[:split], encoded[split:])
            return await transport.read_until(">: ", timeout=1)

        assert asyncio.run(scenario()) == "Zürich>: "

    def test_timeout_raises(self):
        async def scenario():
            transport, _ = make_transport(b"partial output")
            await transport.read_until(">: ", timeout=0.05)

        with pytest.raises(ReadTimeoutError):
            asyncio.run(scenario())

    def test_timeout_is_a_timeout_error(self):
        assert issubclass(ReadTimeoutError, TimeoutError)

    def test_eof_raises_transport_closed(self):
        async def scenario():
            transport, reader = make_transport(b"partial")
            reader.feed_eof()
            await transport.read_until(">: ", timeout=1)

        with pytest.raises(TransportClosedError):
            asyncio.run(scenario())


class TestWriteAndClose:
    """Test writes and close notifications"""

    def test_write_encodes_and_drains(self):
        writer = RecordingWriter()

        async def scenario():
            transport, _ = make_transport(writer=writer)
            await transport.write_and_drain("totp ls\r")

        asyncio.run(scenario())

        assert writer.data == b"totp ls\r"
        assert writer.drained == 1

    def test_close_notifies_listeners_once(self):
        writer = RecordingWriter()
        notified = []

        async def scenario():
            transport, _ = make_transport(writer=writer)
            transport.add_close_listener(notified.append)
            await transport.close()
            await transport.close()
            return transport

        transport = asyncio.run(scenario())

        assert notified == [transport]
        assert transport.is_closed
        assert writer.closed

    def test_connection_lost_notifies_listeners(self):
        notified = []

        async def scenario():
            transport, _ = make_transport()
            transport.add_close_listener(notified.append)
            transport._handle_connection_lost(OSError("device unplugged"))
            return transport

        transport = asyncio.run(scenario())
        assert notified == [transport]

    def test_write_after_close_raises(self):
        async def scenario():
            transport, _ = make_transport(writer=RecordingWriter())
            await transport.close()
            await transport.write_and_drain("totp ls\r")

        with pytest.raises(TransportClosedError):
            asyncio.run(scenario())

    def test_failing_listener_does_not_block_others(self):
        notified = []

        def broken(transport):
            raise RuntimeError("listener bug")

        async def scenario():
            transport, _ = make_transport()
            transport.add_close_listener(broken)
            transport.add_close_listener(notified.append)
            await transport.close()

        asyncio.run(scenario())
        assert len(notified) == 1
