"""Request/reply channel on the daemon command socket."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import msgspec

from ..errors import DaemonError, GpioLinkError, ProtocolError, TransportError
from ..metrics import ClientStats
from ..protocol import frame, protocol
from ..protocol.structures import ResponseHeader
from ..util import log_hexdump

logger = logging.getLogger("gpiolink.transport.command")

FatalCallback = Callable[[GpioLinkError], None]


class CommandResult(msgspec.Struct, frozen=True):
    """Outcome of a successful command: status value and inbound extension."""

    value: int
    extension: bytes = b""


class CommandChannel:
    """Serialises requests on one long-lived socket.

    Exactly one request is in flight at a time. The header and any outbound
    extension are written in a single call, and the reply (including its
    extension) is consumed completely before the lock is released.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        timeout: float,
        on_fatal: FatalCallback | None = None,
        stats: ClientStats | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._timeout = timeout
        self._on_fatal = on_fatal
        self._stats = stats if stats is not None else ClientStats()
        self._lock = asyncio.Lock()
        self._closed = False
        self._failure: GpioLinkError | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failure(self) -> GpioLinkError | None:
        return self._failure

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def busy(self) -> bool:
        """True while a request holds the channel."""
        return self._lock.locked()

    async def call(
        self,
        opcode: int,
        p1: int = 0,
        p2: int = 0,
        p3: int = 0,
        extension: bytes = b"",
    ) -> CommandResult:
        """Send one command and wait for its complete reply.

        Raises:
            DaemonError: The daemon returned a negative status for an opcode
                outside ``UNSIGNED_REPLY_COMMANDS``.
            TransportError: The socket failed, closed or timed out.
            ProtocolError: The reply did not match the request.
        """
        self._raise_if_unusable()
        request = frame.encode(opcode, p1, p2, p3, extension)

        async with self._lock:
            self._raise_if_unusable()
            started = time.monotonic()
            try:
                self._writer.write(request)
                await self._writer.drain()
                if logger.isEnabledFor(logging.DEBUG):
                    log_hexdump(logger, logging.DEBUG, f"CMD > {opcode}", request)
                header, payload = await asyncio.wait_for(self._read_reply(opcode), self._timeout)
            except asyncio.TimeoutError as e:
                self._stats.record_failure("timeout")
                raise self._fail(TransportError(f"Command {opcode} timed out after {self._timeout:.3f}s")) from e
            except TransportError as e:
                self._stats.record_failure("transport")
                raise self._fail(e)
            except ProtocolError as e:
                self._stats.record_failure("protocol")
                raise self._fail(e)
            except (ConnectionError, OSError) as e:
                self._stats.record_failure("transport")
                raise self._fail(TransportError(f"Socket write failed: {e}")) from e

        latency_ms = (time.monotonic() - started) * 1000.0
        self._stats.record_command(len(request), protocol.RESPONSE_HEADER_SIZE + len(payload), latency_ms)

        if opcode in protocol.UNSIGNED_REPLY_COMMANDS:
            return CommandResult(value=header.status & protocol.UINT32_MASK, extension=payload)
        if header.failed:
            self._stats.record_failure("daemon")
            logger.debug("Command %d failed with status %d", opcode, header.status)
            raise DaemonError(header.status, opcode)
        return CommandResult(value=header.status, extension=payload)

    async def _read_reply(self, opcode: int) -> tuple[ResponseHeader, bytes]:
        raw = await frame.read_exactly(self._reader, protocol.RESPONSE_HEADER_SIZE)
        header = frame.decode_header(raw)
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, f"CMD < {opcode}", raw)
        if header.opcode != opcode & protocol.UINT32_MASK:
            raise ProtocolError(f"Reply opcode {header.opcode} does not match request {opcode}")
        if header.failed or not frame.expects_extension(opcode):
            return header, b""
        payload = await frame.read_extension(self._reader, header.status)
        return header, payload

    def _raise_if_unusable(self) -> None:
        if self._failure is not None:
            raise TransportError(f"Command channel is unusable: {self._failure}")
        if self._closed:
            raise TransportError("Command channel is closed")

    def _fail(self, exc: GpioLinkError) -> GpioLinkError:
        """Invalidate the channel after a fatal error and notify the owner."""
        if self._failure is None and not self._closed:
            self._failure = exc
            logger.error("Command channel failed: %s", exc)
            self.close()
            if self._on_fatal is not None:
                self._on_fatal(exc)
        return exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()

    async def wait_closed(self) -> None:
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug("Command socket closed with error: %s", e)
