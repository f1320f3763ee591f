from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


@dataclass(frozen=True, slots=True)
class ScriptAction:
    client: str
    line_to_send: str | None = None
    wait_after_for: frozenset[str] = frozenset()

    @property
    def sends(self) -> bool:
        return bool(self.line_to_send)


@dataclass(frozen=True, slots=True)
class Script:
    name: str
    short_description: str
    clients: frozenset[str]
    actions: tuple[ScriptAction, ...]

    def sorted_clients(self) -> list[str]:
        return sorted(self.clients)

    def describe(self) -> str:
        """Human-readable rendering used by the ``print`` command."""
        out = [f"Clients: {', '.join(self.sorted_clients())}"]
        for action in self.actions:
            if action.sends:
                out.append(f"{action.client} will send: {action.line_to_send}")
            if action.wait_after_for:
                out.append(f"  {action.client} will wait for: {' '.join(sorted(action.wait_after_for))}")
        return "\n".join(out) + "\n"


class ResultLineType(str, Enum):
    MESSAGE = "message"
    DISCONNECTED = "disconnected"
    ACTION_SYNC = "action_sync"


@dataclass(frozen=True, slots=True)
class IRCMessageLine:
    client: str
    raw_line: str
    type: ResultLineType = field(default=ResultLineType.MESSAGE, init=False)


@dataclass(frozen=True, slots=True)
class ActionSyncLine:
    """Marks that an action was processed; raw_line is the sent line or empty."""

    client: str
    raw_line: str = ""
    type: ResultLineType = field(default=ResultLineType.ACTION_SYNC, init=False)


@dataclass(frozen=True, slots=True)
class DisconnectedLine:
    client: str
    raw_line: str = ""
    type: ResultLineType = field(default=ResultLineType.DISCONNECTED, init=False)


ResultLine = Union[IRCMessageLine, ActionSyncLine, DisconnectedLine]


@dataclass(slots=True)
class ScriptResults:
    clients: frozenset[str]
    lines: list[ResultLine] = field(default_factory=list)

    def append(self, line: ResultLine) -> None:
        self.lines.append(line)


@dataclass(slots=True)
class RunState:
    """Per-server run state: which clients registered, and who sent last."""

    registered: dict[str, bool] = field(default_factory=dict)
    last_sender: str | None = None

    @classmethod
    def for_clients(cls, clients: frozenset[str] | set[str]) -> RunState:
        return cls(registered={client: False for client in sorted(clients)})

    def is_registered(self, client: str) -> bool:
        return self.registered.get(client, False)

    def mark_registered(self, client: str) -> None:
        self.registered[client] = True
