from __future__ import annotations

from dataclasses import dataclass, field

from ircfw.core.errors import ProtocolFramingError

_TAG_UNESCAPES = {":": ";", "s": " ", "\\": "\\", "r": "\r", "n": "\n"}
_TAG_ESCAPES = [("\\", "\\\\"), (";", "\\:"), (" ", "\\s"), ("\r", "\\r"), ("\n", "\\n")]


@dataclass(slots=True)
class IRCMessage:
    command: str
    params: list[str] = field(default_factory=list)
    prefix: str = ""
    tags: dict[str, str | None] = field(default_factory=dict)

    @property
    def verb(self) -> str:
        return self.command.lower()

    def param(self, index: int, default: str = "") -> str:
        if -len(self.params) <= index < len(self.params):
            return self.params[index]
        return default

    def line(self) -> str:
        return make_line(self.command, *self.params, prefix=self.prefix, tags=self.tags)


def _unescape_tag_value(value: str) -> str:
    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, None)
        if nxt is None:
            # a lone trailing backslash is dropped
            break
        out.append(_TAG_UNESCAPES.get(nxt, nxt))
    return "".join(out)


def _escape_tag_value(value: str) -> str:
    for raw, escaped in _TAG_ESCAPES:
        value = value.replace(raw, escaped)
    return value


def _parse_tags(raw: str) -> dict[str, str | None]:
    tags: dict[str, str | None] = {}
    for item in raw.split(";"):
        if not item:
            continue
        key, sep, value = item.partition("=")
        tags[key] = _unescape_tag_value(value) if sep else None
    return tags


def parse_line(line: str) -> IRCMessage:
    """Parse one IRC line (without its terminator) into an IRCMessage."""
    original = line
    line = line.rstrip("\r\n")
    if "\x00" in line or "\r" in line or "\n" in line:
        raise ProtocolFramingError(original, "line contains a forbidden character")

    tags: dict[str, str | None] = {}
    if line.startswith("@"):
        raw_tags, _, line = line[1:].partition(" ")
        tags = _parse_tags(raw_tags)
        line = line.lstrip(" ")

    prefix = ""
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")
        line = line.lstrip(" ")
        if not prefix:
            raise ProtocolFramingError(original, "empty message source")

    trailing: str | None = None
    if " :" in line:
        line, trailing = line.split(" :", 1)
    elif line.startswith(":"):
        raise ProtocolFramingError(original, "missing command")

    parts = line.split()
    if not parts:
        raise ProtocolFramingError(original, "missing command")

    params = parts[1:]
    if trailing is not None:
        params.append(trailing)
    return IRCMessage(command=parts[0], params=params, prefix=prefix, tags=tags)


def make_line(
    command: str,
    *params: str,
    prefix: str | None = None,
    tags: dict[str, str | None] | None = None,
) -> str:
    if not command:
        raise ValueError("IRC messages need a command")
    pieces: list[str] = []
    if tags:
        rendered = []
        for key, value in tags.items():
            rendered.append(key if value is None or value == "" else f"{key}={_escape_tag_value(value)}")
        pieces.append("@" + ";".join(rendered))
    if prefix:
        pieces.append(f":{prefix}")
    pieces.append(command)

    for idx, param in enumerate(params):
        is_last = idx == len(params) - 1
        needs_trailing = param == "" or " " in param or param.startswith(":")
        if needs_trailing and not is_last:
            raise ValueError(f"only the last parameter may contain spaces or start with ':' [{param}]")
        pieces.append(f":{param}" if needs_trailing else param)
    return " ".join(pieces)


def display_text(line: str) -> str:
    """Render a received line for people: undecodable bytes become U+FFFD."""
    return line.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
