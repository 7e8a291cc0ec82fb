"""Write-once secrets environment file read by the service's process manager."""

from __future__ import annotations

from loguru import logger

from .hosts import Host

log = logger

SECRETS_MODE = 0o600

SECRETS_TEMPLATE = """\
# OpenClaw secrets, managed by clawup
# Loaded by the openclaw-gateway systemd service as its environment.
# Not sourced by interactive shells.
# OP_SERVICE_ACCOUNT_TOKEN=
"""


def ensure_secrets_file(
    host: Host,
    path: str,
    *,
    owner: str | None = 'root:root',
) -> bool:
    """Create ``path`` with the commented template unless it already exists.

    Returns True when the file was created. An existing file, whatever its
    contents, is never touched.
    """
    if host.exists(path):
        log.info('Secrets file already exists: {}', path)
        return False
    host.write_file(path, SECRETS_TEMPLATE, mode=SECRETS_MODE, owner=owner)
    log.info('Created {} ({} {:o})', path, owner or 'current user', SECRETS_MODE)
    return True
