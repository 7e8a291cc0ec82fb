"""Dedicated SSH identity: create once, reuse by path, never borrow personal keys."""

from __future__ import annotations

import base64
import binascii
import datetime
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .errors import ClawupError
from .util import ensure_dir, run_cmd

log = logger


@dataclass(frozen=True)
class KeyMaterial:
    private_key_path: str
    public_key_blob: str
    fingerprint: str

    @property
    def public_key_path(self) -> str:
        return self.private_key_path + '.pub'


def fingerprint_md5(public_key_blob: str) -> str:
    """MD5 colon-hex fingerprint, the form the control plane reports."""
    parts = public_key_blob.strip().split()
    if len(parts) < 2:
        raise ClawupError(f'Malformed public key: {public_key_blob!r}')
    try:
        raw = base64.b64decode(parts[1].encode('ascii'), validate=True)
    except (binascii.Error, ValueError) as ex:
        raise ClawupError(f'Malformed public key: {public_key_blob!r}') from ex
    digest = hashlib.md5(raw).hexdigest()
    return ':'.join(digest[i : i + 2] for i in range(0, len(digest), 2))


def _public_blob_for(private_key: Path) -> str:
    pub = Path(str(private_key) + '.pub')
    if pub.exists():
        return pub.read_text(encoding='utf-8').strip()
    # Derive it from the private half; only works for unencrypted keys.
    res = run_cmd(['ssh-keygen', '-y', '-f', str(private_key)], check=True)
    return res.stdout.strip()


def load_key(private_key: str | Path) -> KeyMaterial:
    path = Path(private_key)
    blob = _public_blob_for(path)
    return KeyMaterial(
        private_key_path=str(path),
        public_key_blob=blob,
        fingerprint=fingerprint_md5(blob),
    )


def _pair_exists(path: Path) -> bool:
    return path.exists() and Path(str(path) + '.pub').exists()


def _move_aside(path: Path, stamp: str) -> None:
    for p in (path, Path(str(path) + '.pub')):
        if p.exists():
            dst = p.with_name(f'{p.name}.bak-{stamp}')
            p.rename(dst)
            log.info('Moved previous key aside: {}', dst)


def generate_key(path: Path, *, today: datetime.date) -> KeyMaterial:
    """Generate a passphrase-less ed25519 pair so automation can use it."""
    ensure_dir(path.parent)
    comment = f'clawup-{today:%Y%m%d}'
    log.info('Generating dedicated SSH key: {}', path)
    run_cmd(
        [
            'ssh-keygen',
            '-q',
            '-t',
            'ed25519',
            '-f',
            str(path),
            '-N',
            '',
            '-C',
            comment,
        ],
        check=True,
    )
    return load_key(path)


def _default_confirm(path: Path) -> bool:
    return True


def ensure_key(
    explicit_path: Optional[str | Path] = None,
    *,
    dedicated_path: str | Path,
    confirm_reuse: Callable[[Path], bool] = _default_confirm,
    today: Optional[datetime.date] = None,
) -> KeyMaterial:
    """Return the key pair used for all remote access.

    Resolution order: an existing ``explicit_path`` wins; then the existing
    dedicated pair if ``confirm_reuse`` accepts it; otherwise a fresh pair is
    generated at ``dedicated_path`` (an old pair there is moved aside).
    """
    if explicit_path:
        p = Path(explicit_path).expanduser()
        if p.exists():
            log.info('Using provided SSH key: {}', p)
            return load_key(p)
        log.warning(
            'Provided SSH key {} does not exist; falling back to the dedicated key.',
            p,
        )

    dedicated = Path(dedicated_path).expanduser()
    if _pair_exists(dedicated):
        log.info('Found existing dedicated key: {}', dedicated)
        if confirm_reuse(dedicated):
            return load_key(dedicated)
        log.info('Reuse declined; generating a new key.')

    today = today or datetime.date.today()
    _move_aside(dedicated, datetime.datetime.now().strftime('%Y%m%dT%H%M%S'))
    return generate_key(dedicated, today=today)
