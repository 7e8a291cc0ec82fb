"""Bounded wait for a new server to accept authenticated SSH sessions."""

from __future__ import annotations

import time
from typing import Callable, Optional

from loguru import logger

from .cloud import ProvisionedServer
from .errors import ReachabilityTimeout
from .hosts import ssh_base_args
from .identity import KeyMaterial
from .util import run_cmd

log = logger

DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_INTERVAL_S = 5.0
DEFAULT_CONNECT_TIMEOUT = 5


def ssh_probe(
    address: str,
    key: KeyMaterial,
    *,
    login: str = 'root',
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
    known_hosts: Optional[str] = None,
) -> bool:
    cmd = [
        'ssh',
        *ssh_base_args(
            key.private_key_path,
            batch_mode=True,
            connect_timeout=connect_timeout,
            user_known_hosts_file=known_hosts,
        ),
        f'{login}@{address}',
        'true',
    ]
    return run_cmd(cmd, check=False, capture=True).code == 0


def wait_reachable(
    address: str,
    key: KeyMaterial,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval_s: float = DEFAULT_INTERVAL_S,
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
    login: str = 'root',
    known_hosts: Optional[str] = None,
    probe: Optional[Callable[[], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    progress: Optional[Callable[[int, int, float], None]] = None,
) -> None:
    """Probe ``address`` until it answers or ``max_attempts`` probes fail.

    Each probe has its own connect timeout, so one slow attempt cannot eat
    the whole budget. Exactly ``max_attempts`` probes are made before
    :class:`ReachabilityTimeout` is raised; there is no sleep after the
    last one.
    """
    if max_attempts < 1:
        raise ValueError('max_attempts must be at least 1')
    if probe is None:

        def probe() -> bool:
            return ssh_probe(
                address,
                key,
                login=login,
                connect_timeout=connect_timeout,
                known_hosts=known_hosts,
            )

    log.info('Waiting for {} to accept SSH connections...', address)
    start = clock()
    for attempt in range(1, max_attempts + 1):
        if probe():
            log.info(
                'Server is ready! ({} attempt(s), {}s)',
                attempt,
                int(clock() - start),
            )
            return
        elapsed = clock() - start
        log.debug(
            'Waiting for {}: attempt {}/{} ({}s)',
            address,
            attempt,
            max_attempts,
            int(elapsed),
        )
        if progress is not None:
            progress(attempt, max_attempts, elapsed)
        if attempt < max_attempts:
            sleep(interval_s)
    raise ReachabilityTimeout(address, max_attempts, clock() - start)


def await_server(
    server: ProvisionedServer, key: KeyMaterial, **kwargs
) -> ProvisionedServer:
    """Run :func:`wait_reachable` and record the outcome on ``server``."""
    try:
        wait_reachable(server.public_address, key, **kwargs)
    except ReachabilityTimeout:
        server.mark_failed()
        raise
    server.mark_reachable()
    return server


def print_progress(attempt: int, max_attempts: int, elapsed: float) -> None:
    print(
        f'\r  Waiting... {attempt}/{max_attempts} ({int(elapsed)}s)',
        end='',
        flush=True,
    )
