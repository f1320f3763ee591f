from __future__ import annotations

import asyncio
import ssl

from ircfw.core.errors import ClientConnectionError, ReadTimeoutError
from ircfw.core.ircmsg import make_line
from ircfw.core.logger import get_logger

logger = get_logger(__name__)

LINE_LIMIT = 1024 * 64


def split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not host:
        raise ClientConnectionError(f"address must be host:port [{address}]")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        return host, int(port)
    except ValueError as exc:
        raise ClientConnectionError(f"invalid port in address [{address}]") from exc


def create_ssl_context(use_tls: bool, tls_skip_verify: bool = False) -> ssl.SSLContext | None:
    if not use_tls:
        return None
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if tls_skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class Socket:
    """Line-buffered IRC connection.

    Reads and writes are serialised independently so a Socket stays safe to
    share, although the runner only ever drives one operation at a time.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, address: str = ""):
        self.address = address
        self._reader = reader
        self._writer = writer
        self._connected = True
        self._read_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._connected

    async def get_line(self, timeout: float | None = None) -> str:
        if not self._connected:
            raise ClientConnectionError("socket is disconnected")
        async with self._read_lock:
            try:
                if timeout is None:
                    raw = await self._reader.readline()
                else:
                    raw = await asyncio.wait_for(self._reader.readline(), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise ReadTimeoutError(f"no line received from {self.address} within {timeout}s") from exc
            except (OSError, ValueError) as exc:
                # ValueError: line longer than the stream limit
                raise ClientConnectionError(f"could not read from {self.address}: {exc}") from exc
        if not raw:
            raise ClientConnectionError(f"connection to {self.address} closed by server")
        # invalid UTF-8 survives as lone surrogates and is re-encoded byte for byte
        return raw.decode("utf-8", errors="surrogateescape").rstrip("\r\n")

    async def send_line(self, line: str) -> None:
        if not self._connected:
            raise ClientConnectionError("socket is disconnected")
        data = (line.rstrip("\r\n") + "\r\n").encode("utf-8", errors="surrogateescape")
        async with self._write_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except OSError as exc:
                raise ClientConnectionError(f"could not write to {self.address}: {exc}") from exc

    async def send(
        self,
        command: str,
        *params: str,
        tags: dict[str, str | None] | None = None,
        prefix: str | None = None,
    ) -> None:
        await self.send_line(make_line(command, *params, prefix=prefix, tags=tags))

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as exc:
            logger.debug("socket.disconnect.error", address=self.address, error=str(exc))


async def connect_socket(address: str, use_tls: bool = False, tls_skip_verify: bool = False) -> Socket:
    host, port = split_address(address)
    ssl_ctx = create_ssl_context(use_tls, tls_skip_verify)
    logger.debug("socket.connect", address=address, tls=use_tls, tls_skip_verify=tls_skip_verify)
    try:
        reader, writer = await asyncio.open_connection(host, port, ssl=ssl_ctx, limit=LINE_LIMIT)
    except OSError as exc:
        raise ClientConnectionError(f"could not connect to {address}: {exc}") from exc
    return Socket(reader, writer, address=address)
