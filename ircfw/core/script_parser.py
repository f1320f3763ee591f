"""
Script parser.

A script is plain text, one statement per line; indentation is ignored:

    #~ Channel messages
    #~d Two clients join a channel and talk to each other
    ! c1 c2
    c1 NICK dan
    c1 USER d 0 * :Dan
      -> 001
    c2 JOIN #test
      -> c2: join
      -> c1: join

``! ids`` declares clients, ``<id> <line>`` sends a line as that client and
``-> [id:] verbs`` waits until the client sees one of the given verbs.
"""

from __future__ import annotations

from pathlib import Path

from ircfw.core.errors import ScriptParseError
from ircfw.core.logger import get_logger
from ircfw.state.script import Script, ScriptAction

logger = get_logger(__name__)

NAME_PREFIX = "#~ "
DESCRIPTION_PREFIX = "#~d "
CLIENT_PREFIX = "! "
SYNC_PREFIX = "-> "
DISALLOWED_LEADING_CHARS = ("!", "#", "-")


def fold_client_id(client_id: str) -> str:
    return client_id.casefold()


def _validate_client_id(client_id: str, clients: set[str], line_number: int) -> None:
    if not client_id:
        raise ScriptParseError(line_number, "empty client ID")
    if client_id in clients:
        raise ScriptParseError(line_number, f"client ID [{client_id}] is redefined")
    if client_id.startswith(DISALLOWED_LEADING_CHARS):
        raise ScriptParseError(line_number, f"client ID [{client_id}] starts with a disallowed character")
    if ":" in client_id:
        raise ScriptParseError(line_number, f"client ID [{client_id}] contains a disallowed character")
    # folding may in theory produce whitespace
    if any(ch.isspace() for ch in client_id):
        raise ScriptParseError(line_number, f"client ID [{client_id}] cannot contain whitespace")


def _parse_client_ids(rest: str, clients: set[str], line_number: int) -> None:
    ids = rest.split()
    if not ids:
        raise ScriptParseError(line_number, "no client IDs defined with [!]")
    for raw_id in ids:
        client_id = fold_client_id(raw_id)
        _validate_client_id(client_id, clients, line_number)
        clients.add(client_id)


def _resolve_sync_client(
    rest: str,
    clients: set[str],
    actions: list[ScriptAction],
) -> tuple[str | None, str]:
    if ":" in rest:
        # IDs cannot contain ':' so at most one declared ID is followed by it
        target, _, verb_text = rest.partition(":")
        folded_target = fold_client_id(target)
        return (folded_target if folded_target in clients else None), verb_text

    previous = actions[-1]
    if previous.sends:
        return previous.client, rest
    return None, rest


def _parse_sync_line(
    line: str,
    clients: set[str],
    actions: list[ScriptAction],
    line_number: int,
) -> ScriptAction:
    if not actions:
        raise ScriptParseError(line_number, f"sync line has no actions to sync against [{line}]")

    rest = line[len(SYNC_PREFIX):].strip()
    client_id, verb_text = _resolve_sync_client(rest, clients, actions)
    if client_id is None:
        raise ScriptParseError(line_number, f"could not find matching client for sync line [{line}]")

    verbs = frozenset(verb.lower() for verb in verb_text.split())
    return ScriptAction(client=client_id, line_to_send=None, wait_after_for=verbs)


def _match_action_line(line: str, clients: set[str]) -> ScriptAction | None:
    """Match ``<id> <line>`` or ``<id>\\t<line>`` against the declared clients.

    IDs never contain whitespace, so the text before the first space or tab
    is the only candidate ID and the match is unambiguous.
    """
    cut = min((idx for idx in (line.find(" "), line.find("\t")) if idx >= 0), default=-1)
    if cut <= 0:
        return None
    client_id = line[:cut]
    if client_id not in clients:
        return None
    return ScriptAction(client=client_id, line_to_send=line[cut + 1:])


def parse_script(text: str) -> Script:
    name = ""
    short_description = ""
    clients: set[str] = set()
    actions: list[ScriptAction] = []

    for line_number, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.rstrip("\r").lstrip(" \t")

        if not line.strip():
            continue

        if line.startswith(NAME_PREFIX):
            name = line[len(NAME_PREFIX):].strip()
            continue
        if line.startswith(DESCRIPTION_PREFIX):
            short_description = line[len(DESCRIPTION_PREFIX):].strip()
            continue
        if line.startswith("#"):
            continue

        if line.startswith(CLIENT_PREFIX):
            _parse_client_ids(line[len(CLIENT_PREFIX):], clients, line_number)
            continue
        if line.startswith("!"):
            raise ScriptParseError(
                line_number,
                f"malformed client definition, must start with '{CLIENT_PREFIX}' (including the space) [{line}]",
            )

        if line.startswith(SYNC_PREFIX):
            actions.append(_parse_sync_line(line, clients, actions, line_number))
            continue
        if line.startswith("-"):
            raise ScriptParseError(
                line_number,
                f"malformed sync line, must start with '{SYNC_PREFIX}' (including the space) [{line}]",
            )

        action = _match_action_line(line, clients)
        if action is not None:
            actions.append(action)
            continue

        raise ScriptParseError(line_number, f"could not understand line [{line}]")

    if not clients:
        raise ScriptParseError(None, "no clients defined in the script")

    logger.debug("script.parsed", name=name, clients=sorted(clients), actions=len(actions))
    return Script(
        name=name,
        short_description=short_description,
        clients=frozenset(clients),
        actions=tuple(actions),
    )


def load_script(path: str | Path) -> Script:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ScriptParseError(None, f"script {path} is not valid UTF-8: {exc}") from exc
    return parse_script(text)
