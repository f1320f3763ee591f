from __future__ import annotations

import argparse
import asyncio
import sys
import webbrowser
from importlib.metadata import PackageNotFoundError, version

from ircfw.config.servers import ServerConfig, load_config_file
from ircfw.config.settings import settings
from ircfw.core.errors import ConfigError, FrameworkError
from ircfw.core.logger import get_logger
from ircfw.core.logging import configure_logging
from ircfw.core.script_parser import load_script
from ircfw.report.html_report import html_from_results, write_report
from ircfw.runner.console import ConsoleTranscript
from ircfw.runner.multi_server import run_all, run_on_server

logger = get_logger(__name__)


def _package_version() -> str:
    try:
        return version("ircfw")
    except PackageNotFoundError:
        return "0.0.0+unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ircfw", description="Script-driven IRC server test framework.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_package_version()}")
    sub = parser.add_subparsers(dest="command", required=True)

    print_cmd = sub.add_parser("print", help="Parse a script and print its actions.")
    print_cmd.add_argument("script", help="Script filename.")

    run_cmd = sub.add_parser("run", help="Run a script against a single server.")
    run_cmd.add_argument("address", help="Server address as host:port.")
    run_cmd.add_argument("script", help="Script filename.")
    run_cmd.add_argument("--tls", action="store_true", help="Connect using TLS.")
    run_cmd.add_argument("--tls-noverify", action="store_true", help="Don't verify the provided TLS certificates.")
    run_cmd.add_argument("--no-colours", action="store_true", help="Disable coloured output.")
    run_cmd.add_argument("--timeout", type=float, default=None, help="Fail when a read takes longer than this many seconds.")
    run_cmd.add_argument("--debug", action="store_true", help="Output extra debug lines.")

    multi_cmd = sub.add_parser("run-multi", help="Run a script against every server in a settings file.")
    multi_cmd.add_argument("settings", help="Settings filename (YAML).")
    multi_cmd.add_argument("script", help="Script filename.")
    multi_cmd.add_argument("--browser", action="store_true", help="Open the result HTML in the browser.")
    multi_cmd.add_argument("--timeout", type=float, default=None, help="Fail when a read takes longer than this many seconds.")
    multi_cmd.add_argument("--debug", action="store_true", help="Output extra debug lines.")
    return parser


def cmd_print(args: argparse.Namespace) -> int:
    script = load_script(args.script)
    print(script.describe())
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    script = load_script(args.script)
    transcript = ConsoleTranscript(script.clients, use_colours=not args.no_colours)
    asyncio.run(
        run_on_server(
            script,
            args.address,
            use_tls=args.tls or args.tls_noverify,
            tls_skip_verify=args.tls_noverify,
            observer=transcript,
            read_timeout=args.timeout if args.timeout is not None else settings.READ_TIMEOUT,
        )
    )
    return 0


def cmd_run_multi(args: argparse.Namespace) -> int:
    script = load_script(args.script)
    config = load_config_file(args.settings)
    if not config.servers:
        raise ConfigError("settings file does not define any servers")

    def _started(server_id: str, info: ServerConfig) -> None:
        print(f"- {info.display_name} ...", end="\n" if args.debug else "", flush=True)

    def _done(server_id: str, info: ServerConfig) -> None:
        print("OK!")

    results = asyncio.run(
        run_all(
            script,
            config.servers,
            read_timeout=args.timeout if args.timeout is not None else settings.READ_TIMEOUT,
            on_server_start=_started,
            on_server_done=_done,
        )
    )

    path = write_report(html_from_results(script, config.servers, results))
    print(f"\nResults are in: {path}")
    if args.browser:
        webbrowser.open(path.as_uri())
    return 0


COMMANDS = {
    "print": cmd_print,
    "run": cmd_run,
    "run-multi": cmd_run_multi,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    level = "DEBUG" if getattr(args, "debug", False) else settings.LOG_LEVEL
    configure_logging(level, settings.log_format_normalized)

    try:
        return COMMANDS[args.command](args)
    except FrameworkError as exc:
        logger.debug("cli.failed", command=args.command, error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
