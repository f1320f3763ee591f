from __future__ import annotations

from typing import Awaitable, Callable, Protocol

from ircfw.config.servers import ServerConfig
from ircfw.config.settings import settings
from ircfw.core.errors import ClientConnectionError
from ircfw.core.logger import get_logger
from ircfw.core.socket import connect_socket
from ircfw.runner.sync_engine import LineConnection, ResultObserver, SyncEngine
from ircfw.state.script import RunState, Script, ScriptResults

logger = get_logger(__name__)


class ClientConnection(LineConnection, Protocol):
    async def disconnect(self) -> None: ...


Connector = Callable[[str, bool, bool], Awaitable[ClientConnection]]
ServerHook = Callable[[str, ServerConfig], None]


async def connect_clients(
    script: Script,
    address: str,
    use_tls: bool = False,
    tls_skip_verify: bool = False,
    *,
    connect: Connector = connect_socket,
) -> dict[str, ClientConnection]:
    connections: dict[str, ClientConnection] = {}
    try:
        for client in script.sorted_clients():
            connections[client] = await connect(address, use_tls, tls_skip_verify)
            logger.debug("orchestrator.client.connected", client=client, address=address)
    except ClientConnectionError as exc:
        await disconnect_clients(connections, quit_message=None)
        raise ClientConnectionError(f"could not connect client: {exc}") from exc
    return connections


async def disconnect_clients(connections: dict[str, ClientConnection], quit_message: str | None = None) -> None:
    for client, conn in connections.items():
        if quit_message:
            try:
                await conn.send_line(quit_message)
            except ClientConnectionError as exc:
                logger.debug("orchestrator.client.quit_failed", client=client, error=str(exc))
        # one failed close must not leave the remaining clients connected
        try:
            await conn.disconnect()
        except (ClientConnectionError, OSError) as exc:
            logger.warning("orchestrator.client.disconnect_failed", client=client, error=str(exc))


async def run_on_server(
    script: Script,
    address: str,
    use_tls: bool = False,
    tls_skip_verify: bool = False,
    *,
    connect: Connector = connect_socket,
    observer: ResultObserver | None = None,
    read_timeout: float | None = None,
    quit_message: str | None = None,
) -> ScriptResults:
    """Connect every client to one server, run the script, then disconnect."""
    quit_message = settings.QUIT_MESSAGE if quit_message is None else quit_message
    connections = await connect_clients(script, address, use_tls, tls_skip_verify, connect=connect)
    try:
        engine = SyncEngine(
            script,
            connections,
            state=RunState.for_clients(script.clients),
            observer=observer,
            read_timeout=read_timeout,
        )
        return await engine.run()
    finally:
        await disconnect_clients(connections, quit_message=quit_message)


async def run_all(
    script: Script,
    servers: dict[str, ServerConfig],
    *,
    connect: Connector = connect_socket,
    read_timeout: float | None = None,
    quit_message: str | None = None,
    on_server_start: ServerHook | None = None,
    on_server_done: ServerHook | None = None,
) -> dict[str, ScriptResults]:
    """Run the script against every server, one after another, in ID order.

    Any failure aborts the whole run: no results are returned for servers
    that already completed either.
    """
    results: dict[str, ScriptResults] = {}
    for server_id in sorted(servers):
        info = servers[server_id]
        logger.info("orchestrator.server.start", server=server_id, address=info.address, tls=info.use_tls)
        if on_server_start is not None:
            on_server_start(server_id, info)

        results[server_id] = await run_on_server(
            script,
            info.address,
            info.use_tls,
            info.tls_skip_verify,
            connect=connect,
            read_timeout=read_timeout,
            quit_message=quit_message,
        )

        logger.info("orchestrator.server.done", server=server_id, lines=len(results[server_id].lines))
        if on_server_done is not None:
            on_server_done(server_id, info)
    return results
