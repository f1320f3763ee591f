"""
Server settings file.

The settings file lists the servers a script is run against, keyed by a
short identifier that also fixes the order servers are tested in:

    servers:
      ergo:
        name: Ergo
        address: localhost:6667
      inspircd:
        address: irc.example.org:6697
        tls: true
        tls-skip-verify: true
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ircfw.core.errors import ConfigError


class ServerConfig(BaseModel):
    display_name: str = Field(default="", alias="name")
    address: str
    use_tls: bool = Field(default=False, alias="tls")
    tls_skip_verify: bool = Field(default=False, alias="tls-skip-verify")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class FrameworkConfig(BaseModel):
    servers: dict[str, ServerConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _fill_display_names(self) -> FrameworkConfig:
        for server_id, info in self.servers.items():
            if not server_id:
                raise ValueError("server IDs cannot be empty")
            if not info.display_name:
                info.display_name = server_id
        return self

    def sorted_server_ids(self) -> list[str]:
        return sorted(self.servers)


def load_config(data: str) -> FrameworkConfig:
    try:
        raw = yaml.safe_load(data) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("settings file must contain a mapping at the top level")

    servers = raw.get("servers") or {}
    if not isinstance(servers, dict):
        raise ConfigError("'servers' must be a mapping of server ID to server settings")
    # YAML happily produces null or integer keys; IDs are always strings here
    raw["servers"] = {"" if key is None else str(key): value for key, value in servers.items()}

    try:
        return FrameworkConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid settings: {exc}") from exc


def load_config_file(path: str | Path) -> FrameworkConfig:
    try:
        data = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"could not read settings file {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"settings file {path} is not valid UTF-8: {exc}") from exc
    return load_config(data)
