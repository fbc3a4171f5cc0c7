"""
Config file discovery, loading and rewriting for il_sync.

Three locations are searched (``IL_SYNC_CONFIG``, ``./.il_sync/config.yml``
and the per-user file under ``$XDG_CONFIG_HOME``).  Files may pull in
other files with ``!include`` and reference environment variables as
``${NAME}`` or ``${NAME:-fallback}``.  Top-level sections of a more
specific file replace those of a more general one.

A single file can also be read verbatim and rewritten atomically, which
is how the sync cursor and the result of ``il-sync init`` are persisted.

Usage:
    from il_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "IL_SYNC_CONFIG"
PROJECT_CONFIG = Path(".il_sync") / "config.yml"

# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<fallback>.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${NAME}`` and ``${NAME:-fallback}`` references in *value*.

    An unset or empty variable expands to its fallback, or to ``""`` when
    there is none.  An unterminated ``${`` is left as written.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m["name"]) or m["fallback"] or "", value
    )


def _interpolate_recursive(node: Any) -> Any:
    """Apply ``interpolate_env_vars`` to every string inside *node*."""
    if isinstance(node, dict):
        return {key: _interpolate_recursive(item) for key, item in node.items()}
    if isinstance(node, list):
        return [_interpolate_recursive(item) for item in node]
    if isinstance(node, str):
        return interpolate_env_vars(node)
    return node


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` that also resolves ``!include other.yml``.

    The tag is registered on this subclass only, so ``yaml.safe_load``
    keeps rejecting it.  ``include_chain`` holds the files currently being
    loaded; an include that points back into it is a cycle.
    """

    include_chain: tuple[Path, ...] = ()

    def include(self, node: yaml.ScalarNode) -> Any:
        here = Path(self.name).resolve()
        # Relative targets resolve against the including file
        target = (here.parent / Path(self.construct_scalar(node)).expanduser()).resolve()

        if target in self.include_chain:
            cycle = " -> ".join(str(p) for p in (*self.include_chain, target))
            raise ValueError(f"Circular include detected: {cycle}")
        if not target.is_file():
            raise FileNotFoundError(
                f"Include file not found: {target} (referenced from {here})"
            )
        return _load_yaml_with_includes(target, self.include_chain)


ConfigLoader.add_constructor("!include", ConfigLoader.include)


def _load_yaml_with_includes(path: Path, chain: tuple[Path, ...] = ()) -> Any:
    """Parse the YAML file at *path*, following ``!include`` tags."""
    path = path.resolve()
    with path.open(encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = (*chain, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


def global_config_path() -> Path:
    """The per-user config file: ``$XDG_CONFIG_HOME/il_sync/config.yml``,
    or under ``~/.config`` when the variable is unset."""
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base).expanduser() / "il_sync" / "config.yml"


def discover_config_files() -> list[Path]:
    """Existing config files, most specific first.

    1. the file named by ``IL_SYNC_CONFIG``
    2. ``.il_sync/config.yml`` under the working directory
    3. ``global_config_path()``
    """
    candidates = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates += [Path.cwd() / PROJECT_CONFIG, global_config_path()]
    return [path for path in candidates if path.exists()]


def resolve_config_path(explicit: Path | str | None = None) -> Path:
    """The one file that ``init`` and the cursor store should write to.

    *explicit* (``--config``) wins; otherwise the most specific existing
    file, falling back to the per-user path.  Nothing is created here.
    """
    if explicit:
        return Path(explicit).expanduser().resolve()
    found = discover_config_files()
    return found[0] if found else global_config_path()


# ---------------------------------------------------------------------------
# Merged load
# ---------------------------------------------------------------------------


def load_hierarchical_config(explicit: Path | str | None = None) -> dict[str, Any]:
    """Merge every discovered config file into one dict.

    Files are applied from the most general to the most specific, and each
    one replaces whole top-level sections (no deep merge).  An *explicit*
    path is applied last.  Environment references are expanded after the
    merge.  With no files at all the result is ``{}``.

    Raises:
        OSError: If a file is not valid YAML.
        FileNotFoundError: If an ``!include`` target is missing.
        ValueError: On circular includes.
    """
    paths = discover_config_files()
    if explicit:
        first = Path(explicit).expanduser().resolve()
        paths = [p for p in [first, *paths] if p.exists()]
        paths = list(dict.fromkeys(paths))

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except yaml.YAMLError as exc:
            raise OSError(f"{path}: invalid YAML: {exc}") from exc

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Ignoring %s: top level is a %s, not a mapping",
                path,
                type(data).__name__,
            )

    if not merged:
        logger.debug("No config values found, using defaults")
    return _interpolate_recursive(merged)


# ---------------------------------------------------------------------------
# Single-file rewrite
# ---------------------------------------------------------------------------


def read_config_file(path: Path) -> dict[str, Any]:
    """Read one config file as written: no includes, no expansion.

    Used before a rewrite so ``${VAR}`` references are preserved.

    Raises:
        OSError: If the file cannot be read or is not valid YAML.
    """
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise OSError(f"{path}: invalid YAML: {exc}") from exc
    return data if isinstance(data, dict) else {}


def save_config_file(path: Path, data: dict[str, Any]) -> None:
    """Replace *path* with *data* dumped as YAML.

    The dump goes to a sibling temp file that is then renamed over
    *path*, so readers see either the old or the new file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
