"""Shared utility helpers for subprocess execution, paths, and command formatting."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

log = logger


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str


class CmdError(RuntimeError):
    def __init__(self, cmd: Sequence[str] | str, result: CmdResult):
        self.cmd = cmd
        self.result = result
        detail = (result.stderr or result.stdout or '').strip()
        super().__init__(
            f'Command failed (code={result.code}): {_display(cmd)}\n{detail}'.strip()
        )


def _display(cmd: Sequence[str] | str) -> str:
    if isinstance(cmd, str):
        return cmd
    return shell_join(cmd)


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def run_cmd(
    cmd: Sequence[str],
    *,
    check: bool = True,
    capture: bool = True,
    input_text: Optional[str] = None,
) -> CmdResult:
    """Run a command, logging it and any failure to the execution log.

    With ``capture=False`` the child inherits this process's terminal, which
    is how interactive programs are handed control.
    """
    cmd = list(cmd)
    log.opt(depth=1).debug('RUN: {}', shell_join(cmd))
    p = subprocess.run(
        cmd,
        input=input_text,
        capture_output=capture,
        text=True,
    )
    res = CmdResult(p.returncode, p.stdout or '', p.stderr or '')
    if capture and (res.stdout.strip() or res.stderr.strip()):
        log.opt(depth=1).debug(
            'OUTPUT code={} stdout={} stderr={}',
            res.code,
            res.stdout.strip(),
            res.stderr.strip(),
        )
    if check and p.returncode != 0:
        log.opt(depth=1).error(
            'Command failed code={} cmd={} stderr={} stdout={}',
            p.returncode,
            shell_join(cmd),
            res.stderr.strip(),
            res.stdout.strip(),
        )
        raise CmdError(cmd, res)
    return res


def which(cmd: str) -> Optional[str]:
    from shutil import which as _which

    return _which(cmd)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))
