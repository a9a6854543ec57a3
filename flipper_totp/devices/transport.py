"""
Serial Transport

Framed read/write primitives over an open asyncio serial connection.

Reads accumulate decoded text until a literal terminator or a compiled
pattern matches. Anything received after the match stays buffered and is
returned by the next read.
"""

import asyncio
import codecs
import logging
from typing import Callable, List, Optional, Pattern, Union

import serial_asyncio

Terminator = Union[str, Pattern[str]]

READ_CHUNK_SIZE = 4096


class ReadTimeoutError(TimeoutError):
    """Terminator did not appear before the read deadline"""


class TransportClosedError(ConnectionError):
    """Serial channel reached EOF or was closed while reading"""


def find_terminator(buffer: str, terminator: Terminator) -> Optional[int]:
    """
    Locate a terminator in accumulated text.

    Args:
        buffer: Text received so far
        terminator: Literal string or compiled regular expression

    Returns:
        Index just past the end of the first match, or None
    """
    if isinstance(terminator, str):
        index = buffer.find(terminator)
        if index < 0:
            return None
        return index + len(terminator)

    match = terminator.search(buffer)
    if match is None:
        return None
    return match.end()


class _ObservedStreamProtocol(asyncio.StreamReaderProtocol):
    """StreamReaderProtocol that reports connection loss to its owner"""

    def __init__(self, reader: asyncio.StreamReader, on_lost: Callable[[Optional[Exception]], None]):
        super().__init__(reader)
        self._on_lost = on_lost

    def connection_lost(self, exc):
        super().connection_lost(exc)
        self._on_lost(exc)


class SerialTransport:
    """
    Open serial channel to the device.

    Wraps an asyncio StreamReader/StreamWriter pair. Construct through
    ``SerialTransport.open()`` for a real port; tests build one directly
    around an in-memory reader.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: Optional[asyncio.StreamWriter],
        path: str = "",
        encoding: str = "utf-8"
    ):
        self.path = path
        self.encoding = encoding
        self._reader = reader
        self._writer = writer
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""
        self._closed = False
        self._close_listeners: List[Callable[["SerialTransport"], None]] = []

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @classmethod
    async def open(cls, path: str, baudrate: int) -> "SerialTransport":
        """
        Open a serial port.

        Args:
            path: Port path (e.g. /dev/ttyACM0, COM3)
            baudrate: Line speed

        Returns:
            Connected SerialTransport

        Raises:
            serial.SerialException: If the port cannot be opened
        """
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        transport = cls(reader, None, path=path)

        protocol = _ObservedStreamProtocol(reader, transport._handle_connection_lost)
        serial_transport, _ = await serial_asyncio.create_serial_connection(
            loop, lambda: protocol, path, baudrate=baudrate
        )
        transport._writer = asyncio.StreamWriter(serial_transport, protocol, reader, loop)
        transport.logger.debug(f"Opened {path} at {baudrate} baud")
        return transport

    @property
    def is_closed(self) -> bool:
        return self._closed

    def add_close_listener(self, callback: Callable[["SerialTransport"], None]):
        """Register a callback invoked once when the channel closes"""
        self._close_listeners.append(callback)

    async def write_and_drain(self, text: str):
        """Write text and wait until it has been handed to the port"""
        if self._closed or self._writer is None:
            raise TransportClosedError(f"Transport {self.path} is closed")

        self._writer.write(text.encode(self.encoding))
        await self._writer.drain()

    async def read_until(self, terminator: Terminator, timeout: Optional[float] = None) -> str:
        """
        Read until the terminator matches.

        Args:
            terminator: Literal string or compiled pattern
            timeout: Deadline in seconds, None waits forever

        Returns:
            Text up to and including the match

        Raises:
            ReadTimeoutError: Deadline elapsed before a match
            TransportClosedError: Channel reached EOF
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while True:
            end = find_terminator(self._pending, terminator)
            if end is not None:
                result = self._pending[:end]
                self._pending = self._pending[end:]
                return result

            if deadline is None:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
            else:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise ReadTimeoutError(
                        f"Timed out after {timeout}s waiting for {_describe(terminator)}"
                    )
                try:
                    chunk = await asyncio.wait_for(self._reader.read(READ_CHUNK_SIZE), remaining)
                except asyncio.TimeoutError:
                    raise ReadTimeoutError(
                        f"Timed out after {timeout}s waiting for {_describe(terminator)}"
                    ) from None

            if not chunk:
                self._pending += self._decoder.decode(b"", final=True)
                raise TransportClosedError(f"Transport {self.path} closed while reading")

            self._pending += self._decoder.decode(chunk)

    async def close(self):
        """Close the channel. Safe to call more than once."""
        if self._closed:
            return

        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except (OSError, ConnectionError) as e:
                self.logger.debug(f"Ignoring error while closing {self.path}: {e}")

        self._handle_connection_lost(None)

    def _handle_connection_lost(self, exc: Optional[Exception]):
        if self._closed:
            return

        self._closed = True
        if exc is not None:
            self.logger.warning(f"Serial connection {self.path} lost: {exc}")
        else:
            self.logger.debug(f"Serial connection {self.path} closed")

        listeners, self._close_listeners = self._close_listeners, []
        for callback in listeners:
            try:
                callback(self)
            except Exception as e:
                self.logger.error(f"Close listener failed: {e}", exc_info=True)


def _describe(terminator: Terminator) -> str:
    if isinstance(terminator, str):
        return repr(terminator)
    return f"/{terminator.pattern}/"
