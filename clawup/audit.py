"""Audit interceptor installed in front of a sensitive command."""

from __future__ import annotations

import os
import shlex

from loguru import logger

from .errors import StepNotApplicable
from .hosts import Host

log = logger

REAL_SUFFIX = '.real'
STAGED_SUFFIX = '.clawup-tmp'


def real_binary_path(binary: str) -> str:
    return binary + REAL_SUFFIX


def interceptor_script(real_binary: str, log_file: str, *, tag: str) -> str:
    """Wrapper that logs its arguments, then execs the real binary.

    ``exec`` replaces the wrapper process so exit status and signals reach
    the caller unchanged.
    """
    log_dir = os.path.dirname(log_file) or '.'
    return (
        '#!/bin/bash\n'
        f'mkdir -p {shlex.quote(log_dir)}\n'
        f'echo "$(date -Iseconds) [{tag}] $*" >> {shlex.quote(log_file)}\n'
        f'exec {shlex.quote(real_binary)} "$@"\n'
    )


def install_audit_proxy(
    host: Host,
    binary: str,
    *,
    log_file: str,
    owner: str | None = None,
) -> bool:
    """Move ``binary`` aside and put the interceptor under its name.

    The interceptor is staged next to ``binary`` before anything is moved,
    and a failed swap puts the real binary back, so ``binary`` is never
    left missing.

    Returns False when already installed (the renamed binary is present).
    Raises :class:`StepNotApplicable` when there is no binary to wrap.
    """
    real = real_binary_path(binary)
    if host.exists(real):
        log.info('Audit interceptor already installed for {}', binary)
        return False
    if not host.exists(binary):
        raise StepNotApplicable(f'{binary} is not installed; nothing to audit')
    tag = os.path.basename(binary)
    staged = binary + STAGED_SUFFIX
    try:
        host.write_file(
            staged,
            interceptor_script(real, log_file, tag=tag),
            mode=0o755,
            owner=owner,
        )
        if owner:
            host.run(f'chown {shlex.quote(owner)} {shlex.quote(binary)}')
    except Exception:
        host.run(f'rm -f {shlex.quote(staged)}', check=False)
        raise
    host.rename(binary, real)
    try:
        host.rename(staged, binary)
    except Exception:
        log.warning('Restoring {} after failed interceptor swap', binary)
        host.rename(real, binary)
        host.run(f'rm -f {shlex.quote(staged)}', check=False)
        raise
    log.info('Installed audit interceptor: {} -> {} (log: {})', binary, real, log_file)
    return True
