from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Mapping, Optional

import scriptconfig as scfg
from loguru import logger

from ..config import ClawupConfig, apply_env_overrides, load
from ..errors import ClawupError
from ..util import which
from ..wizard import ask_yes_no

log = logger

REQUIRED_CMDS = ['ssh', 'ssh-keygen']


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(None, help='Path to config TOML (default: .clawup.toml).')
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )
    yes = scfg.Value(
        False,
        isflag=True,
        help='Accept defaults without prompting (e.g. reuse the dedicated key).',
    )


def _cfg_path(p: str | None) -> Path:
    return Path(p or '.clawup.toml').resolve()


def _load_cfg(
    config_path: str | None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ClawupConfig:
    """Config file (when present), then environment overrides.

    Headless runs need no config file: defaults plus environment suffice.
    """
    path = _cfg_path(config_path)
    if path.exists():
        cfg = load(path)
    elif config_path is not None:
        raise FileNotFoundError(
            f'Config not found: {path}. Run: clawup config init --config {path}'
        )
    else:
        cfg = ClawupConfig()
    apply_env_overrides(cfg, os.environ if environ is None else environ)
    return cfg.expanded_paths()


def _interactive() -> bool:
    return sys.stdin.isatty()


def _confirm_reuse_fn(*, yes: bool) -> Callable[[Path], bool]:
    def confirm(path: Path) -> bool:
        if yes or not _interactive():
            return True
        return ask_yes_no(f'Use existing key {path}?', True)

    return confirm


def check_commands() -> list[str]:
    return [c for c in REQUIRED_CMDS if which(c) is None]


def _require_local_tools() -> None:
    missing = check_commands()
    if missing:
        raise ClawupError(
            f'Missing required tool: {", ".join(missing)}. '
            'Install the OpenSSH client and retry.'
        )
