"""Command-line entry point for il-sync.

Commands:
    run (default)  Watch the sync root and sync continuously.
    init           Sign in and write the config file.
    push / pull    Run a single sync cycle and print its summary.
    install        Register the daemon as a user service.
    verify         Check that the daemon is installed and running.
"""

import argparse
import getpass
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import (
    load_hierarchical_config,
    read_config_file,
    resolve_config_path,
    save_config_file,
)
from .config_schema import UnifiedConfig, build_config
from .core.client import SyncClient
from .logger import setup_logging
from .service import ServiceError, install_service, verify_service
from .sync.engine import SyncEngine
from .sync.errors import SyncError

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _load_unified(args: argparse.Namespace) -> UnifiedConfig:
    # .env first so ${VAR} interpolation in YAML can see its values
    load_dotenv()
    return build_config(load_hierarchical_config(args.config))


def _load_config(args: argparse.Namespace, unified: UnifiedConfig) -> Config:
    yaml_fallbacks: dict[str, Any] = {
        k: v for k, v in unified.sync.model_dump().items() if v is not None
    }
    return load_config(
        sync_root=args.root,
        server_url=args.server_url,
        insecure=args.insecure,
        debug=args.debug,
        yaml_fallbacks=yaml_fallbacks,
    )


def run_init(
    config_path: Path,
    input_fn=input,
    getpass_fn=getpass.getpass,
    client_factory=SyncClient,
) -> None:
    """Prompt for root, server and credentials; save a signed-in config.

    Existing values in *config_path* are kept when a prompt is left blank.

    Raises:
        ValueError: If a required answer is missing.
        SyncError: If the server rejects the credentials.
    """
    data = read_config_file(config_path) if config_path.exists() else {}
    section = data.get("sync")
    if not isinstance(section, dict):
        section = {}

    root = input_fn("Sync root path (e.g. ~/my-docs): ").strip()
    if root:
        section["root"] = str(Path(root).expanduser())
    url = input_fn("Server URL (e.g. https://app.example.com): ").strip()
    if url:
        section["server_url"] = url
    if not section.get("root") or not section.get("server_url"):
        raise ValueError("sync root and server URL are required")

    email = input_fn("Email: ").strip()
    if not email:
        raise ValueError("email is required")
    password = getpass_fn("Password: ")
    if not password:
        raise ValueError("password is required")

    _stderr_print("Authenticating...")
    client = client_factory(
        Config(
            sync_root=section["root"],
            server_url=section["server_url"],
            insecure=bool(section.get("insecure", False)),
        )
    )
    section["auth_token"] = client.fetch_sync_token(email, password)

    data["sync"] = section
    save_config_file(config_path, data)
    _stderr_print(f"Config saved to {config_path}")


def _ensure_config(args: argparse.Namespace, config_path: Path) -> Config:
    """Load the config, running the first-run prompts when it is incomplete."""
    try:
        config = _load_config(args, _load_unified(args))
    except ValueError as exc:
        logger.debug("Config incomplete: %s", exc)
        config = None

    if config is not None and config.auth_token:
        return config

    _stderr_print("Config not found. Enter your sync settings:")
    run_init(config_path)
    return _load_config(args, _load_unified(args))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_run(args: argparse.Namespace, config_path: Path) -> int:
    config = _ensure_config(args, config_path)
    engine = SyncEngine.from_config(config, config_path)

    def _handle_signal(signum, frame):
        logger.info("Received signal %d, stopping", signum)
        engine.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    engine.run()
    return 0


def cmd_init(args: argparse.Namespace, config_path: Path) -> int:
    run_init(config_path)
    return 0


def _cmd_cycle(args: argparse.Namespace, config_path: Path, direction: str) -> int:
    config = _load_config(args, _load_unified(args))
    engine = SyncEngine.from_config(config, config_path)
    report = engine.push() if direction == "push" else engine.pull()
    if report is None:
        _stderr_print(f"{direction.capitalize()} did not run; see log for details.")
        return 1
    print(report.summary())
    for error in report.errors:
        print(f"  {error}")
    return 1 if report.errors else 0


def cmd_push(args: argparse.Namespace, config_path: Path) -> int:
    return _cmd_cycle(args, config_path, "push")


def cmd_pull(args: argparse.Namespace, config_path: Path) -> int:
    return _cmd_cycle(args, config_path, "pull")


def cmd_install(args: argparse.Namespace, config_path: Path) -> int:
    _ensure_config(args, config_path)
    path = install_service()
    print(f"Daemon installed successfully ({path}).")
    return 0


def cmd_verify(args: argparse.Namespace, config_path: Path) -> int:
    verify_service()
    print("Daemon is installed and running.")
    return 0


COMMANDS = {
    "run": cmd_run,
    "init": cmd_init,
    "push": cmd_push,
    "pull": cmd_pull,
    "install": cmd_install,
    "verify": cmd_verify,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="il-sync",
        description="Two-way sync between a local folder and an InterlinedList document store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # First run: prompts for root, server and credentials, then syncs
  il-sync

  # One-shot cycles (useful for scripting)
  il-sync push
  il-sync pull

  # Run in the background as a user service
  il-sync install
  il-sync verify
        """,
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=sorted(COMMANDS),
        help="Command to run (default: run)",
    )
    parser.add_argument("--config", help="Config file (default: discovered)")
    parser.add_argument(
        "--root",
        help="Override sync root (takes precedence over IL_SYNC_ROOT and config files)",
    )
    parser.add_argument(
        "--server-url",
        help="Override server URL (takes precedence over IL_SYNC_SERVER_URL and config files)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"il-sync version {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        unified = _load_unified(args)
    except (OSError, ValueError) as exc:
        _stderr_print(f"Config error: {exc}")
        return 1

    # An unattended daemon has no terminal to log to
    mode = "daemon" if args.command == "run" and not sys.stderr.isatty() else "cli"
    setup_logging(
        mode=mode,
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format,
        level=unified.logging.level,
    )

    config_path = resolve_config_path(args.config)
    try:
        return COMMANDS[args.command](args, config_path)
    except ServiceError as exc:
        _stderr_print(f"{args.command.capitalize()} failed: {exc}")
        return 1
    except SyncError as exc:
        _stderr_print(f"Authentication failed: {exc}")
        return 1
    except (OSError, ValueError) as exc:
        _stderr_print(f"{args.command.capitalize()} failed: {exc}")
        return 1
    except (KeyboardInterrupt, EOFError):
        _stderr_print("\nInterrupted.")
        return 130


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
