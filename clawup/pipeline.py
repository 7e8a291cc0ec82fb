"""End-to-end flow: identity, provisioning, readiness, bootstrap, and summary."""

from __future__ import annotations

import contextlib
import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from loguru import logger

from .cloud import (
    ControlPlane,
    HetznerControlPlane,
    ProvisionedServer,
    ServerSpec,
    ServerState,
    provision,
)
from .config import ClawupConfig
from .hosts import Host, SSHHost
from .identity import KeyMaterial, ensure_key
from .orchestrator import BootstrapOrchestrator, Report, StepContext
from .readiness import await_server
from .steps import SERVICE_NAME, build_steps

log = logger


@contextlib.contextmanager
def execution_log(cfg: ClawupConfig) -> Iterator[Path]:
    """Attach a JSON-lines DEBUG sink for the duration of a run."""
    runs = cfg.state_dir() / 'runs'
    runs.mkdir(parents=True, exist_ok=True)
    stamp = datetime.datetime.now().strftime('%Y%m%dT%H%M%S')
    path = runs / f'{stamp}.jsonl'
    sink_id = logger.add(str(path), level='DEBUG', serialize=True)
    log.debug('Execution log: {}', path)
    try:
        yield path
    finally:
        logger.remove(sink_id)


def known_hosts_path(cfg: ClawupConfig, address: str) -> Path:
    d = cfg.state_dir() / 'known_hosts'
    d.mkdir(parents=True, exist_ok=True)
    return d / address


def resolve_key(
    cfg: ClawupConfig, *, confirm_reuse: Callable[[Path], bool]
) -> KeyMaterial:
    return ensure_key(
        cfg.paths.ssh_key_path or None,
        dedicated_path=cfg.paths.dedicated_key,
        confirm_reuse=confirm_reuse,
    )


def make_api(cfg: ClawupConfig) -> HetznerControlPlane:
    return HetznerControlPlane(
        cfg.cloud.token,
        base_url=cfg.cloud.api_url,
        timeout=cfg.cloud.timeout_s,
    )


def server_spec(cfg: ClawupConfig) -> ServerSpec:
    return ServerSpec(
        name=cfg.server.name,
        size_class=cfg.server.server_type,
        location=cfg.server.location,
        image_id=cfg.server.image,
    )


def provision_server(
    cfg: ClawupConfig, key: KeyMaterial, api: Optional[ControlPlane] = None
) -> ProvisionedServer:
    api = api if api is not None else make_api(cfg)
    key_name = f'{cfg.cloud.key_name_prefix}-{int(datetime.datetime.now().timestamp())}'
    return provision(server_spec(cfg), key, api, key_name=key_name)


def wait_for_server(
    cfg: ClawupConfig,
    server: ProvisionedServer,
    key: KeyMaterial,
    *,
    progress=None,
) -> ProvisionedServer:
    return await_server(
        server,
        key,
        max_attempts=int(cfg.probe.max_attempts),
        interval_s=float(cfg.probe.interval_s),
        connect_timeout=int(cfg.probe.connect_timeout),
        known_hosts=str(known_hosts_path(cfg, server.public_address)),
        progress=progress,
    )


def connect(
    cfg: ClawupConfig, address: str, key: KeyMaterial, *, select: bool = False
) -> SSHHost:
    host = SSHHost(
        address,
        key.private_key_path,
        known_hosts=known_hosts_path(cfg, address),
    )
    if select:
        host.select_login([cfg.user.name, 'root'])
    return host


def existing_server(address: str) -> ProvisionedServer:
    return ProvisionedServer(
        id='', public_address=address, state=ServerState.REACHABLE
    )


def run_bootstrap(
    cfg: ClawupConfig,
    host: Host,
    server: Optional[ProvisionedServer],
    *,
    log_path: Optional[Path] = None,
    progress=print,
) -> Report:
    ctx = StepContext(host=host, cfg=cfg)
    orch = BootstrapOrchestrator(
        ctx, log_path=str(log_path) if log_path else None, progress=progress
    )
    return orch.run(server, build_steps(cfg))


def render_final_summary(
    cfg: ClawupConfig, address: str, key: KeyMaterial
) -> str:
    user = cfg.user.name
    return '\n'.join(
        [
            'clawup setup complete!',
            '',
            f'  Server IP:   {address}',
            f'  SSH user:    {user}',
            f'  SSH key:     {key.private_key_path}',
            '',
            '  Connect:',
            f'    ssh -i {key.private_key_path} {user}@{address}',
            '',
            '  OpenClaw commands (on server):',
            f'    sudo systemctl status {SERVICE_NAME}',
            f'    sudo journalctl -u {SERVICE_NAME} -f',
            '',
            '  Manage secrets:',
            f'    sudo vim {cfg.paths.secrets_file}',
            f'    sudo systemctl restart {SERVICE_NAME}',
        ]
    )
