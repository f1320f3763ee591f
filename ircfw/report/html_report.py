from __future__ import annotations

import html
import json
import tempfile
from pathlib import Path
from string import Template
from typing import Any

from ircfw.config.servers import ServerConfig
from ircfw.config.settings import settings
from ircfw.core.ircmsg import display_text
from ircfw.core.logger import get_logger
from ircfw.state.script import (
    ActionSyncLine,
    DisconnectedLine,
    IRCMessageLine,
    ResultLine,
    Script,
    ScriptResults,
)

logger = get_logger(__name__)

HTML_TEMPLATE = Template(
    """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>$title - IRC Test Framework</title>
<style>
:root {
  --sans-font-family: Trebuchet MS, Lucida Grande, Lucida Sans Unicode, Lucida Sans, Tahoma, sans-serif;
  --mono-font-family: monaco, Consolas, Lucida Console, monospace;
  --side-indent: 0.65em;
}
html { margin: 0; padding: 0; }
body { font-family: var(--sans-font-family); display: flex; flex-direction: column; min-height: 100%; margin: 0; padding: 0; }
header { padding: 0 var(--side-indent); display: flex; flex-direction: column; }
h1 { font-size: 3em; color: #243847; padding: 0.5em 0; margin: 0; }
.desc { display: block; color: #455e6e; margin-top: -0.8em; font-size: 1.05em; padding-bottom: 1.7em; }
.content { flex: 1 1 auto; background: #aeae65; }
.tabs button { font-family: var(--sans-font-family); border: 0; padding: 0.4em 0.8em; background: #d8d8a0; cursor: pointer; }
.tabs button.active { background: #fff; }
.tab-content { background: #fff; padding: 0.5em var(--side-indent); font-family: var(--mono-font-family); white-space: pre-wrap; }
.line.sent { color: #1d5c96; font-weight: bold; }
.line.received { color: #333; }
.line.event { color: #a33; font-style: italic; }
.client { display: inline-block; min-width: 6em; color: #777; }
footer { padding: 0.3em var(--side-indent); }
a { color: #217de4; font-style: italic; text-decoration: none; }
</style>
</head>
<body>
<header>
  <h1>$title</h1>
  <span class="desc">$description</span>
</header>
<div class="content">
  <div class="tabs">
$tabs
  </div>
  <div class="tab-content" id="tab-content"></div>
</div>
<footer>
  <a href="https://github.com/irccom/test-framework">IRC test framework</a>
</footer>
<script type="application/json" id="results">$results</script>
<script>
(function () {
  var data = JSON.parse(document.getElementById("results").textContent);
  var content = document.getElementById("tab-content");
  var buttons = document.querySelectorAll(".tabs button");
  function show(serverId) {
    content.textContent = "";
    buttons.forEach(function (b) { b.classList.toggle("active", b.dataset.server === serverId); });
    data.servers[serverId].lines.forEach(function (line) {
      if (line.type === "action_sync" && !line.line) { return; }
      var row = document.createElement("div");
      row.className = "line " + line.direction;
      var client = document.createElement("span");
      client.className = "client";
      client.textContent = line.client + (line.direction === "sent" ? " ->" : " <-");
      row.appendChild(client);
      row.appendChild(document.createTextNode(" " + line.line));
      content.appendChild(row);
    });
  }
  buttons.forEach(function (b) { b.addEventListener("click", function () { show(b.dataset.server); }); });
  if (buttons.length) { show(buttons[0].dataset.server); }
})();
</script>
</body>
</html>
"""
)


def result_line_payload(line: ResultLine) -> dict[str, str]:
    match line:
        case ActionSyncLine():
            direction = "sent"
        case IRCMessageLine():
            direction = "received"
        case DisconnectedLine():
            direction = "event"
        case _:
            raise TypeError(f"unknown result line: {line!r}")
    return {
        "client": line.client,
        "type": line.type.value,
        "direction": direction,
        "line": display_text(line.raw_line),
    }


def results_payload(
    script: Script,
    servers: dict[str, ServerConfig],
    results: dict[str, ScriptResults],
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "script": {
            "name": script.name,
            "description": script.short_description,
            "clients": script.sorted_clients(),
        },
        "servers": {},
    }
    for server_id in sorted(results):
        info = servers.get(server_id)
        payload["servers"][server_id] = {
            "name": info.display_name if info is not None else server_id,
            "clients": sorted(results[server_id].clients),
            "lines": [result_line_payload(line) for line in results[server_id].lines],
        }
    return payload


def _json_for_script_tag(payload: dict[str, Any]) -> str:
    # keep "</script>" and friends inside strings from closing the tag
    return json.dumps(payload, ensure_ascii=False).replace("</", "<\\/")


def html_from_results(
    script: Script,
    servers: dict[str, ServerConfig],
    results: dict[str, ScriptResults],
) -> str:
    payload = results_payload(script, servers, results)
    tabs = "\n".join(
        f'    <button data-server="{html.escape(server_id)}">{html.escape(entry["name"])}</button>'
        for server_id, entry in payload["servers"].items()
    )
    return HTML_TEMPLATE.substitute(
        title=html.escape(script.name or "Untitled script"),
        description=html.escape(script.short_description),
        tabs=tabs,
        results=_json_for_script_tag(payload),
    )


def write_report(output: str, directory: str | Path | None = None) -> Path:
    target_dir = Path(directory) if directory is not None else settings.report_dir_path
    if target_dir is None:
        target_dir = Path(tempfile.gettempdir())
    target_dir.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        prefix=settings.REPORT_FILE_PREFIX,
        suffix=".html",
        dir=target_dir,
        delete=False,
    ) as handle:
        handle.write(output)
    logger.info("report.written", path=handle.name)
    return Path(handle.name)
