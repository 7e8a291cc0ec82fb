"""Configuration dataclasses, TOML persistence, and environment overrides."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Mapping

import ubelt as ub

from .util import expand

DEFAULT_API_URL = 'https://api.hetzner.cloud/v1'
DEFAULT_TMP_CLEANUP_URL = (
    'https://raw.githubusercontent.com/hwells4/easyclaw/main/scripts/tmp-cleanup.sh'
)
DEFAULT_SECURITY_MD_URL = (
    'https://raw.githubusercontent.com/Dicklesworthstone/acip/main/'
    'integrations/clawdbot/SECURITY.md'
)

SECTIONS = ('cloud', 'server', 'user', 'tools', 'paths', 'probe')


@dataclass
class CloudConfig:
    # Never persisted; comes from the wizard, --token, or HETZNER_TOKEN.
    token: str = ''
    api_url: str = DEFAULT_API_URL
    key_name_prefix: str = 'clawup'
    timeout_s: int = 30


@dataclass
class ServerConfig:
    name: str = ''
    server_type: str = 'cpx21'
    location: str = 'ash'
    image: str = 'ubuntu-24.04'


@dataclass
class UserConfig:
    name: str = 'claw'
    ssh_port: int = 22
    service_port: int = 7860


@dataclass
class ToolsConfig:
    install_docker: bool = True
    install_claude_code: bool = True
    install_codex: bool = True
    run_onboarding: bool = True
    run_wizard: bool = True


@dataclass
class PathsConfig:
    ssh_key_path: str = ''
    dedicated_key: str = '~/.ssh/clawup_ed25519'
    state_dir: str = ''
    secrets_file: str = '/etc/openclaw-secrets'
    openclaw_config: str = ''
    tmp_cleanup_source: str = DEFAULT_TMP_CLEANUP_URL
    security_md_url: str = DEFAULT_SECURITY_MD_URL


@dataclass
class ProbeConfig:
    max_attempts: int = 60
    interval_s: float = 5
    connect_timeout: int = 5


@dataclass
class ClawupConfig:
    cloud: CloudConfig = field(default_factory=CloudConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    user: UserConfig = field(default_factory=UserConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'ClawupConfig':
        self.paths.ssh_key_path = (
            expand(self.paths.ssh_key_path) if self.paths.ssh_key_path else ''
        )
        self.paths.dedicated_key = expand(self.paths.dedicated_key)
        self.paths.state_dir = (
            expand(self.paths.state_dir) if self.paths.state_dir else ''
        )
        self.paths.openclaw_config = (
            expand(self.paths.openclaw_config)
            if self.paths.openclaw_config
            else ''
        )
        return self

    def state_dir(self) -> Path:
        if self.paths.state_dir:
            p = Path(expand(self.paths.state_dir))
            p.mkdir(parents=True, exist_ok=True)
            return p
        return Path(ub.Path.appdir('clawup', type='cache').ensuredir())


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def _emit_toml_kv(lines: list[str], key: str, val: object) -> None:
    if isinstance(val, bool):
        lines.append(f'{key} = {"true" if val else "false"}')
    elif isinstance(val, (int, float)):
        lines.append(f'{key} = {val}')
    elif isinstance(val, list):
        parts = [f'"{_toml_escape(str(item))}"' for item in val]
        lines.append(f'{key} = [{", ".join(parts)}]')
    else:
        lines.append(f'{key} = "{_toml_escape(str(val))}"')


def dump_toml(cfg: ClawupConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    if d.get('verbosity', 1) != 1:
        lines.append(f'verbosity = {d["verbosity"]}')
        lines.append('')
    for section in SECTIONS:
        body = d.get(section, {})
        lines.append(f'[{section}]')
        for k, v in body.items():
            if section == 'cloud' and k == 'token':
                continue
            _emit_toml_kv(lines, k, v)
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def config_from_dict(raw: dict) -> ClawupConfig:
    cfg = ClawupConfig()
    for section in SECTIONS:
        body = raw.get(section, None)
        if isinstance(body, dict):
            obj = getattr(cfg, section)
            for k, v in body.items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg


def load(path: Path) -> ClawupConfig:
    raw = tomllib.loads(path.read_text(encoding='utf-8'))
    return config_from_dict(raw)


def save(path: Path, cfg: ClawupConfig) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_toml(cfg), encoding='utf-8')
    return path


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


# env var -> (section, attribute, converter)
ENV_OVERRIDES = {
    'HETZNER_TOKEN': ('cloud', 'token', str),
    'SERVER_TYPE': ('server', 'server_type', str),
    'SERVER_LOCATION': ('server', 'location', str),
    'SERVER_NAME': ('server', 'name', str),
    'NEW_USER': ('user', 'name', str),
    'SSH_PORT': ('user', 'ssh_port', int),
    'OPENCLAW_PORT': ('user', 'service_port', int),
    'SSH_KEY_PATH': ('paths', 'ssh_key_path', str),
    'OPENCLAW_CONFIG': ('paths', 'openclaw_config', str),
    'INSTALL_DOCKER': ('tools', 'install_docker', _parse_bool),
    'INSTALL_CLAUDE_CODE': ('tools', 'install_claude_code', _parse_bool),
    'INSTALL_CODEX': ('tools', 'install_codex', _parse_bool),
    'RUN_WIZARD': ('tools', 'run_wizard', _parse_bool),
}


def apply_env_overrides(
    cfg: ClawupConfig, environ: Mapping[str, str]
) -> ClawupConfig:
    """Overlay the supported environment variables onto ``cfg``.

    Only the CLI calls this; everything below it takes the config object.
    """
    for var, (section, attr, conv) in ENV_OVERRIDES.items():
        raw = environ.get(var, None)
        if raw is None or raw == '':
            continue
        try:
            value = conv(raw)
        except ValueError as ex:
            raise RuntimeError(f'Invalid value for {var}: {raw!r}') from ex
        setattr(getattr(cfg, section), attr, value)
    return cfg
