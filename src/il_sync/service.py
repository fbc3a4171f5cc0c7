"""Register the sync daemon as a per-user OS service.

Linux uses a systemd user unit, macOS a launchd agent.  Both run
``il-sync run`` from the directory the service was installed from, so
project-level config files and ``.env`` keep resolving the same way.
"""

from __future__ import annotations

import logging
import os
import plistlib
import shutil
import subprocess
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

SERVICE_NAME = "il-sync"
DISPLAY_NAME = "InterlinedList Sync"
DESCRIPTION = "Bidirectional sync for InterlinedList documents"
LAUNCHD_LABEL = "com.interlinedlist.il-sync"


class ServiceError(Exception):
    """Service installation or status check failed."""


def service_command() -> list[str]:
    """Return the argv the service manager should execute."""
    exe = shutil.which(SERVICE_NAME)
    if exe:
        return [exe, "run"]
    return [sys.executable, "-m", "il_sync.cli", "run"]


# ---------------------------------------------------------------------------
# Unit file rendering
# ---------------------------------------------------------------------------


def systemd_unit(command: list[str], working_directory: Path) -> str:
    """Render a systemd user unit for *command*."""
    exec_start = " ".join(_quote_systemd(arg) for arg in command)
    return (
        "[Unit]\n"
        f"Description={DESCRIPTION}\n"
        "After=network-online.target\n"
        "\n"
        "[Service]\n"
        "Type=simple\n"
        f"WorkingDirectory={working_directory}\n"
        f"ExecStart={exec_start}\n"
        "Restart=on-failure\n"
        "RestartSec=10\n"
        "\n"
        "[Install]\n"
        "WantedBy=default.target\n"
    )


def _quote_systemd(arg: str) -> str:
    if not arg or any(c in arg for c in ' \t"\\'):
        escaped = arg.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return arg


def launchd_plist(command: list[str], working_directory: Path) -> bytes:
    """Render a launchd agent property list for *command*."""
    return plistlib.dumps(
        {
            "Label": LAUNCHD_LABEL,
            "ProgramArguments": command,
            "WorkingDirectory": str(working_directory),
            "RunAtLoad": True,
            "KeepAlive": True,
        }
    )


# ---------------------------------------------------------------------------
# Install / verify
# ---------------------------------------------------------------------------


def _run(cmd: list[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=30)
    except (subprocess.TimeoutExpired, FileNotFoundError) as exc:
        raise ServiceError(f"{cmd[0]}: {exc}") from exc


def _check(result: subprocess.CompletedProcess, what: str) -> None:
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise ServiceError(f"{what} failed ({result.returncode}): {detail}")


def unit_path(platform: str | None = None, home: Path | None = None) -> Path:
    """Where the service definition lives on *platform*.

    Raises:
        ServiceError: On platforms without a supported service manager.
    """
    platform = platform or sys.platform
    home = home or Path.home()
    if platform.startswith("linux"):
        return home / ".config" / "systemd" / "user" / f"{SERVICE_NAME}.service"
    if platform == "darwin":
        return home / "Library" / "LaunchAgents" / f"{LAUNCHD_LABEL}.plist"
    raise ServiceError(f"Service install is not supported on {platform}")


def install_service(
    platform: str | None = None,
    home: Path | None = None,
    working_directory: Path | None = None,
) -> Path:
    """Write the service definition and start it.

    Returns:
        Path of the written unit or plist file.

    Raises:
        ServiceError: If the platform is unsupported or the service
            manager rejects the service.
    """
    platform = platform or sys.platform
    path = unit_path(platform, home)
    workdir = working_directory or Path(os.getcwd())
    command = service_command()

    path.parent.mkdir(parents=True, exist_ok=True)
    if platform == "darwin":
        path.write_bytes(launchd_plist(command, workdir))
        _check(_run(["launchctl", "load", "-w", str(path)]), "launchctl load")
    else:
        path.write_text(systemd_unit(command, workdir), encoding="utf-8")
        _check(_run(["systemctl", "--user", "daemon-reload"]), "systemctl daemon-reload")
        _check(
            _run(["systemctl", "--user", "enable", "--now", f"{SERVICE_NAME}.service"]),
            "systemctl enable",
        )

    logger.info("Installed %s service at %s", DISPLAY_NAME, path)
    return path


def verify_service(platform: str | None = None, home: Path | None = None) -> None:
    """Check that the daemon is installed and running.

    Raises:
        ServiceError: If it is not installed, not running, or the
            platform is unsupported.
    """
    platform = platform or sys.platform
    path = unit_path(platform, home)
    if not path.exists():
        raise ServiceError(f"daemon is not installed ({path} missing)")

    if platform == "darwin":
        result = _run(["launchctl", "list", LAUNCHD_LABEL])
        if result.returncode != 0:
            raise ServiceError("daemon is not loaded")
        if '"PID"' not in result.stdout:
            raise ServiceError("daemon is not running (status: stopped)")
        return

    result = _run(["systemctl", "--user", "is-active", f"{SERVICE_NAME}.service"])
    status = result.stdout.strip() or "unknown"
    if status != "active":
        raise ServiceError(f"daemon is not running (status: {status})")
