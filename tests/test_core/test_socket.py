from __future__ import annotations

import asyncio
import ssl

import pytest

from ircfw.core.errors import ClientConnectionError, ReadTimeoutError
from ircfw.core.socket import connect_socket, create_ssl_context, split_address


async def _start_line_server(handler):
    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, f"127.0.0.1:{port}"


def test_split_address():
    assert split_address("irc.example.org:6667") == ("irc.example.org", 6667)
    assert split_address("[::1]:6697") == ("::1", 6697)
    with pytest.raises(ClientConnectionError):
        split_address("localhost")
    with pytest.raises(ClientConnectionError):
        split_address("localhost:ircd")


def test_ssl_context_options():
    assert create_ssl_context(False) is None
    verifying = create_ssl_context(True)
    assert verifying.verify_mode == ssl.CERT_REQUIRED
    relaxed = create_ssl_context(True, tls_skip_verify=True)
    assert relaxed.verify_mode == ssl.CERT_NONE
    assert relaxed.check_hostname is False


@pytest.mark.asyncio
async def test_lines_are_terminated_and_stripped():
    received: list[bytes] = []

    async def handler(reader, writer):
        received.append(await reader.readline())
        writer.write(b":srv 001 test :welcome\r\n")
        await writer.drain()
        received.append(await reader.readline())
        writer.close()

    server, address = await _start_line_server(handler)
    async with server:
        sock = await connect_socket(address)
        await sock.send_line("NICK test\n")
        assert await sock.get_line() == ":srv 001 test :welcome"
        await sock.send("PRIVMSG", "#chan", "hi there")
        await asyncio.sleep(0.05)
        await sock.disconnect()

    assert received == [b"NICK test\r\n", b"PRIVMSG #chan :hi there\r\n"]


@pytest.mark.asyncio
async def test_invalid_utf8_is_echoed_byte_for_byte():
    received: list[bytes] = []

    async def handler(reader, writer):
        writer.write(b":srv PING :caf\xe9\r\n")
        await writer.drain()
        received.append(await reader.readline())
        writer.close()

    server, address = await _start_line_server(handler)
    async with server:
        sock = await connect_socket(address)
        line = await sock.get_line()
        assert line == ":srv PING :caf\udce9"
        await sock.send("PONG", line.rsplit(":", 1)[1])
        await asyncio.sleep(0.05)
        await sock.disconnect()

    assert received == [b"PONG caf\xe9\r\n"]


@pytest.mark.asyncio
async def test_closed_connection_raises():
    async def handler(reader, writer):
        writer.close()

    server, address = await _start_line_server(handler)
    async with server:
        sock = await connect_socket(address)
        with pytest.raises(ClientConnectionError, match="closed"):
            await sock.get_line()
        await sock.disconnect()
        assert not sock.connected
        with pytest.raises(ClientConnectionError, match="disconnected"):
            await sock.send_line("QUIT")


@pytest.mark.asyncio
async def test_read_timeout():
    done = asyncio.Event()

    async def handler(reader, writer):
        await done.wait()
        writer.close()

    server, address = await _start_line_server(handler)
    async with server:
        sock = await connect_socket(address)
        with pytest.raises(ReadTimeoutError):
            await sock.get_line(timeout=0.05)
        done.set()
        await sock.disconnect()


@pytest.mark.asyncio
async def test_connect_refused():
    server, address = await _start_line_server(lambda r, w: w.close())
    server.close()
    await server.wait_closed()
    with pytest.raises(ClientConnectionError, match="could not connect"):
        await connect_socket(address)
