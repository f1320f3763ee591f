"""
Synchronization engine.

Runs a script's actions, in order, against one live connection per client.
Two strategies decide when an action is finished:

- verb-wait: read lines until one of the verbs the script asked for shows
  up. Used until the client is registered, and whenever another client sent
  the most recent line (the responses we want are then caused by someone
  else's action, so only the verb tells us when they arrived).
- ping-barrier: once registered, every action ends with a uniquely tagged
  PING. The server answers in order, so its PONG arrives only after every
  reply the action triggered, however many there were.
"""

from __future__ import annotations

from typing import Callable, Protocol

from ircfw.config.settings import settings
from ircfw.core.errors import ClientConnectionError, ProtocolFramingError
from ircfw.core.ircmsg import IRCMessage, parse_line
from ircfw.core.logger import get_logger
from ircfw.state.script import (
    ActionSyncLine,
    IRCMessageLine,
    ResultLine,
    RunState,
    Script,
    ScriptAction,
    ScriptResults,
)

logger = get_logger(__name__)

REGISTRATION_VERB = "001"
PING_VERB = "ping"
PONG_VERB = "pong"

ResultObserver = Callable[[ResultLine], None]


class LineConnection(Protocol):
    async def get_line(self, timeout: float | None = None) -> str: ...

    async def send_line(self, line: str) -> None: ...

    async def send(self, command: str, *params: str, tags: dict[str, str | None] | None = None, prefix: str | None = None) -> None: ...


class SyncEngine:
    def __init__(
        self,
        script: Script,
        connections: dict[str, LineConnection],
        *,
        state: RunState | None = None,
        observer: ResultObserver | None = None,
        read_timeout: float | None = None,
        sync_token_prefix: str | None = None,
    ):
        missing = sorted(script.clients - set(connections))
        if missing:
            raise ClientConnectionError(f"no connection for client(s): {', '.join(missing)}")
        self.script = script
        self.connections = connections
        self.state = state if state is not None else RunState.for_clients(script.clients)
        self.results = ScriptResults(clients=script.clients)
        self.observer = observer
        self.read_timeout = read_timeout
        self.sync_token_prefix = sync_token_prefix or settings.SYNC_TOKEN_PREFIX

    def _record(self, line: ResultLine) -> None:
        self.results.append(line)
        if self.observer is not None:
            self.observer(line)

    async def _read_message(self, index: int, client: str) -> tuple[str, IRCMessage]:
        conn = self.connections[client]
        try:
            raw = await conn.get_line(timeout=self.read_timeout)
        except ClientConnectionError as exc:
            raise type(exc)(f"could not get line from server on action {index} ({client}): {exc}") from exc
        try:
            return raw, parse_line(raw)
        except ProtocolFramingError as exc:
            raise ProtocolFramingError(raw, f"got malformed line from server on action {index} ({client})") from exc

    async def _answer_ping(self, client: str, message: IRCMessage) -> None:
        await self.connections[client].send("PONG", message.param(0))

    async def _send_phase(self, action: ScriptAction) -> None:
        if action.sends:
            await self.connections[action.client].send_line(action.line_to_send)
            self._record(ActionSyncLine(client=action.client, raw_line=action.line_to_send))
            self.state.last_sender = action.client
        else:
            self._record(ActionSyncLine(client=action.client, raw_line=""))

    def _needs_verb_wait(self, action: ScriptAction) -> bool:
        if not action.wait_after_for:
            return False
        return not self.state.is_registered(action.client) or self.state.last_sender != action.client

    async def _verb_wait(self, index: int, action: ScriptAction) -> None:
        client = action.client
        logger.debug("engine.wait.verb", action=index, client=client, verbs=sorted(action.wait_after_for))
        while True:
            raw, message = await self._read_message(index, client)
            verb = message.verb

            if verb == PING_VERB:
                await self._answer_ping(client, message)
                continue

            if verb == REGISTRATION_VERB:
                self.state.mark_registered(client)
                logger.debug("engine.client.registered", action=index, client=client)

            self._record(IRCMessageLine(client=client, raw_line=raw))

            if verb in action.wait_after_for:
                return

    def sync_token(self, index: int) -> str:
        return f"{self.sync_token_prefix}{index}"

    async def _ping_barrier(self, index: int, action: ScriptAction) -> None:
        client = action.client
        token = self.sync_token(index)
        logger.debug("engine.wait.ping", action=index, client=client, token=token)
        await self.connections[client].send("PING", token)
        while True:
            raw, message = await self._read_message(index, client)
            verb = message.verb

            # servers answer "PONG <server> :<token>", some just "PONG :<token>"
            if verb == PONG_VERB and message.param(-1) == token:
                return

            if verb == PING_VERB:
                await self._answer_ping(client, message)
                continue

            self._record(IRCMessageLine(client=client, raw_line=raw))

    async def run_action(self, index: int, action: ScriptAction) -> None:
        logger.debug("engine.action.start", action=index, client=action.client, sends=action.sends)
        await self._send_phase(action)

        if self._needs_verb_wait(action):
            await self._verb_wait(index, action)

        if self.state.is_registered(action.client):
            await self._ping_barrier(index, action)

    async def run(self) -> ScriptResults:
        for index, action in enumerate(self.script.actions):
            await self.run_action(index, action)
        logger.debug("engine.run.done", actions=len(self.script.actions), lines=len(self.results.lines))
        return self.results


async def run_script(
    script: Script,
    connections: dict[str, LineConnection],
    *,
    state: RunState | None = None,
    observer: ResultObserver | None = None,
    read_timeout: float | None = None,
) -> ScriptResults:
    engine = SyncEngine(script, connections, state=state, observer=observer, read_timeout=read_timeout)
    return await engine.run()
