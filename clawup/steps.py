"""The server bootstrap sequence: hardening, toolchain, and service install steps."""

from __future__ import annotations

import shlex
import textwrap
from pathlib import Path

from loguru import logger

from .audit import install_audit_proxy, real_binary_path
from .config import ClawupConfig
from .errors import ClawupError
from .hosts import as_user
from .orchestrator import Step, StepContext, StepTag, handoff_step
from .secretsfile import ensure_secrets_file
from .swap import compute_swap_size_mb, parse_mem_total_mb

log = logger

REQUIRED = StepTag.REQUIRED
OPTIONAL = StepTag.OPTIONAL

APT = 'DEBIAN_FRONTEND=noninteractive apt-get'
SERVICE_NAME = 'openclaw-gateway'
SWAPFILE = '/swapfile.img'
SSHD_DROPIN = '/etc/ssh/sshd_config.d/99-clawup-hardening.conf'
FAIL2BAN_JAIL = '/etc/fail2ban/jail.local'
UNATTENDED_CONF = '/etc/apt/apt.conf.d/50unattended-upgrades'
BREW_BIN = '/home/linuxbrew/.linuxbrew/bin/brew'
TMP_CLEANUP_MAX_AGE_DAYS = 2
SSH_LISTEN_PORT = 22
APT_STAMP = '/var/lib/clawup/apt-update.stamp'
APT_STAMP_MAX_AGE_MIN = 24 * 60

BASE_PACKAGES = [
    'curl',
    'wget',
    'git',
    'vim',
    'htop',
    'tmux',
    'ufw',
    'fail2ban',
    'unzip',
    'software-properties-common',
    'apt-transport-https',
    'ca-certificates',
    'gnupg',
    'lsb-release',
    'build-essential',
    'python3',
    'python3-pip',
    'python3-venv',
]

SSHD_HARDENING = textwrap.dedent(
    """\
    # Security hardening applied by clawup
    PermitRootLogin no
    PasswordAuthentication no
    PubkeyAuthentication yes
    MaxAuthTries 3
    ClientAliveInterval 300
    ClientAliveCountMax 2
    """
)

UNATTENDED_UPGRADES = textwrap.dedent(
    """\
    Unattended-Upgrade::Allowed-Origins {
        "${distro_id}:${distro_codename}-security";
    };
    Unattended-Upgrade::Automatic-Reboot "false";
    Unattended-Upgrade::Remove-Unused-Dependencies "true";
    """
)


def fail2ban_jail(ssh_port: int) -> str:
    return textwrap.dedent(
        f"""\
        [DEFAULT]
        bantime = 24h
        findtime = 10m
        maxretry = 3

        [sshd]
        enabled = true
        port = {ssh_port}
        filter = sshd
        logpath = /var/log/auth.log
        maxretry = 3
        """
    )


def firewall_ports(cfg: ClawupConfig) -> list[int]:
    # sshd stays on 22 and clawup connects there; never firewall it off.
    ports: list[int] = []
    for p in (SSH_LISTEN_PORT, cfg.user.ssh_port, 80, 443, cfg.user.service_port):
        if int(p) not in ports:
            ports.append(int(p))
    return ports


def _user(ctx: StepContext) -> str:
    return ctx.cfg.user.name


def _home(ctx: StepContext) -> str:
    return f'/home/{_user(ctx)}'


def _q(text: str) -> str:
    return shlex.quote(text)


def _run_as_user(ctx: StepContext, command: str, **kwargs):
    return ctx.host.run(as_user(_user(ctx), command), **kwargs)


def _ensure_bashrc_line(ctx: StepContext, marker: str, line: str) -> None:
    bashrc = f'{_home(ctx)}/.bashrc'
    ctx.host.run(
        f'grep -q {_q(marker)} {_q(bashrc)} 2>/dev/null || '
        f'echo {_q(line)} >> {_q(bashrc)}; '
        f'chown {_q(_user(ctx))}:{_q(_user(ctx))} {_q(bashrc)}'
    )


def _file_matches(ctx: StepContext, path: str, expected: str) -> bool:
    return ctx.host.read_text(path) == expected


def _fetch_and_run_as_user(
    ctx: StepContext, url: str, tmp: str, env: str = ''
) -> None:
    """Download an installer to the target, run it as the admin user, remove it."""
    ctx.host.run(f'curl -fsSL {_q(url)} -o {_q(tmp)} && chmod +r {_q(tmp)}')
    try:
        prefix = f'{env} ' if env else ''
        _run_as_user(ctx, f'{prefix}/bin/bash {_q(tmp)}')
    finally:
        ctx.host.run(f'rm -f {_q(tmp)}', check=False)


# -- system hardening -------------------------------------------------------


def apt_lists_fresh(ctx: StepContext) -> bool:
    return ctx.host.succeeds(
        f'test -n "$(find {APT_STAMP} -mmin -{APT_STAMP_MAX_AGE_MIN} 2>/dev/null)"'
    )


def apt_refresh(ctx: StepContext) -> None:
    ctx.host.run(
        f'{APT} update && mkdir -p {Path(APT_STAMP).parent} && touch {APT_STAMP}'
    )


def packages_upgraded(ctx: StepContext) -> bool:
    # A failed simulation counts as "not upgraded".
    return ctx.host.succeeds(
        'out="$(apt-get -s upgrade 2>/dev/null)" && '
        "! printf '%s\\n' \"$out\" | grep -q '^Inst '"
    )


def apt_upgrade(ctx: StepContext) -> None:
    ctx.host.run(f'{APT} upgrade -y')


def base_packages_installed(ctx: StepContext) -> bool:
    pkgs = ' '.join(BASE_PACKAGES)
    return ctx.host.succeeds(
        f'for p in {pkgs}; do dpkg -s "$p" >/dev/null 2>&1 || exit 1; done'
    )


def install_base_packages(ctx: StepContext) -> None:
    ctx.host.run(f'{APT} install -y {" ".join(BASE_PACKAGES)}')


def admin_user_exists(ctx: StepContext) -> bool:
    user = _user(ctx)
    return ctx.host.succeeds(
        f'id -u {_q(user)} >/dev/null 2>&1 && test -f /etc/sudoers.d/{_q(user)}'
    )


def create_admin_user(ctx: StepContext) -> None:
    user = _user(ctx)
    ctx.host.run(
        f'id -u {_q(user)} >/dev/null 2>&1 || useradd -m -s /bin/bash {_q(user)}; '
        f'usermod -aG sudo {_q(user)}'
    )
    # No password is ever set; access is key-only with passwordless sudo.
    sudoers = f'/etc/sudoers.d/{user}'
    ctx.host.write_file(sudoers, f'{user} ALL=(ALL) NOPASSWD:ALL\n', mode=0o440)
    ctx.host.run(f'visudo -cf {_q(sudoers)}')
    log.info('User {} created (SSH key auth, passwordless sudo)', user)


def admin_has_ssh_access(ctx: StepContext) -> bool:
    return ctx.host.succeeds(f'test -s {_q(_home(ctx))}/.ssh/authorized_keys')


def grant_admin_ssh_access(ctx: StepContext) -> None:
    user = _user(ctx)
    ssh_dir = f'{_home(ctx)}/.ssh'
    ctx.host.run(
        f'mkdir -p {_q(ssh_dir)} && '
        f'cp /root/.ssh/authorized_keys {_q(ssh_dir)}/authorized_keys && '
        f'chown -R {_q(user)}:{_q(user)} {_q(ssh_dir)} && '
        f'chmod 700 {_q(ssh_dir)} && '
        f'chmod 600 {_q(ssh_dir)}/authorized_keys'
    )


def ssh_hardened(ctx: StepContext) -> bool:
    return _file_matches(ctx, SSHD_DROPIN, SSHD_HARDENING)


def harden_ssh(ctx: StepContext) -> None:
    ctx.host.write_file(SSHD_DROPIN, SSHD_HARDENING, mode=0o644)
    res = ctx.host.run('sshd -t', check=False)
    if res.code != 0:
        ctx.host.run(f'rm -f {SSHD_DROPIN}', check=False)
        raise ClawupError(
            f'sshd config validation failed: {(res.stderr or res.stdout).strip()}'
        )
    # Ubuntu 24.04 names the unit "ssh", older releases "sshd".
    ctx.host.run('systemctl restart ssh 2>/dev/null || systemctl restart sshd')
    # Root login is now refused; later steps connect as the admin user.
    ctx.host.switch_login(_user(ctx))
    log.info('SSH hardened. Root login disabled, key auth only.')


def firewall_active(ctx: StepContext) -> bool:
    checks = ["ufw status | grep -q 'Status: active'"]
    for port in firewall_ports(ctx.cfg):
        checks.append(f"ufw status | grep -qE '^{port}/tcp[[:space:]]'")
    return ctx.host.succeeds(' && '.join(checks))


def enable_firewall(ctx: StepContext) -> None:
    cmds = ['ufw default deny incoming', 'ufw default allow outgoing']
    cmds += [f'ufw allow {port}/tcp' for port in firewall_ports(ctx.cfg)]
    cmds.append('ufw --force enable')
    ctx.host.run(' && '.join(cmds))


def fail2ban_configured(ctx: StepContext) -> bool:
    return _file_matches(
        ctx, FAIL2BAN_JAIL, fail2ban_jail(ctx.cfg.user.ssh_port)
    ) and ctx.host.succeeds('systemctl is-active --quiet fail2ban')


def configure_fail2ban(ctx: StepContext) -> None:
    ctx.host.write_file(
        FAIL2BAN_JAIL, fail2ban_jail(ctx.cfg.user.ssh_port), mode=0o644
    )
    ctx.host.run('systemctl enable fail2ban && systemctl restart fail2ban')


def swap_active(ctx: StepContext) -> bool:
    return ctx.host.succeeds(
        f'swapon --show=NAME --noheadings | grep -qx {_q(SWAPFILE)}'
    )


def configure_swap(ctx: StepContext) -> None:
    meminfo = ctx.host.read_text('/proc/meminfo') or ''
    total_mb = parse_mem_total_mb(meminfo)
    if total_mb is None:
        raise ClawupError('Could not read MemTotal from /proc/meminfo')
    size_mb = compute_swap_size_mb(total_mb)
    ctx.host.run(
        f'if [ ! -f {SWAPFILE} ]; then fallocate -l {size_mb}M {SWAPFILE}; fi; '
        f'chmod 0600 {SWAPFILE} && mkswap {SWAPFILE} && swapon {SWAPFILE} && '
        f"(grep -q '{SWAPFILE}' /etc/fstab || echo '{SWAPFILE} none swap sw 0 0' >> /etc/fstab) && "
        'sysctl vm.swappiness=10 && '
        "(grep -q 'vm.swappiness' /etc/sysctl.conf || echo 'vm.swappiness=10' >> /etc/sysctl.conf)"
    )
    log.info('Swap configured ({}MB)', size_mb)


def auto_updates_enabled(ctx: StepContext) -> bool:
    return _file_matches(
        ctx, UNATTENDED_CONF, UNATTENDED_UPGRADES
    ) and ctx.host.succeeds('systemctl is-enabled --quiet unattended-upgrades')


def enable_auto_updates(ctx: StepContext) -> None:
    ctx.host.run(f'{APT} install -y unattended-upgrades')
    ctx.host.write_file(UNATTENDED_CONF, UNATTENDED_UPGRADES, mode=0o644)
    ctx.host.run('systemctl enable --now unattended-upgrades')


# -- toolchain ----------------------------------------------------------------


def homebrew_installed(ctx: StepContext) -> bool:
    return ctx.host.succeeds(f'test -x {BREW_BIN}')


def install_homebrew(ctx: StepContext) -> None:
    # Homebrew refuses to run as root.
    _fetch_and_run_as_user(
        ctx,
        'https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh',
        '/tmp/brew-install.sh',
        env='NONINTERACTIVE=1',
    )
    _ensure_bashrc_line(
        ctx, 'linuxbrew', f'eval "$({BREW_BIN} shellenv)"'
    )


def compiler_tools_installed(ctx: StepContext) -> bool:
    return ctx.host.succeeds(
        as_user(_user(ctx), f'{BREW_BIN} list gcc >/dev/null 2>&1')
    )


def install_compiler_tools(ctx: StepContext) -> None:
    _run_as_user(ctx, f'eval "$({BREW_BIN} shellenv)" && brew install gcc')


def nodejs_installed(ctx: StepContext) -> bool:
    return ctx.host.succeeds(
        "node --version 2>/dev/null | grep -q '^v22\\.' && "
        f'grep -q npm-global {_q(_home(ctx))}/.bashrc'
    )


def install_nodejs(ctx: StepContext) -> None:
    ctx.host.run('curl -fsSL https://deb.nodesource.com/setup_22.x | bash -')
    ctx.host.run(f'{APT} install -y nodejs')
    # Per-user global prefix so the admin user can `npm install -g` without root.
    _run_as_user(
        ctx, 'mkdir -p ~/.npm-global && npm config set prefix ~/.npm-global'
    )
    _ensure_bashrc_line(
        ctx, 'npm-global', 'export PATH="$HOME/.npm-global/bin:$PATH"'
    )


def docker_installed(ctx: StepContext) -> bool:
    return ctx.host.succeeds('command -v docker >/dev/null')


def install_docker(ctx: StepContext) -> None:
    ctx.host.run(
        f'{APT} remove -y docker docker-engine docker.io containerd runc || true',
        check=False,
    )
    ctx.host.run(
        'install -m 0755 -d /etc/apt/keyrings && '
        'curl -fsSL https://download.docker.com/linux/ubuntu/gpg '
        '| gpg --batch --yes --dearmor -o /etc/apt/keyrings/docker.gpg && '
        'chmod a+r /etc/apt/keyrings/docker.gpg && '
        'echo "deb [arch=$(dpkg --print-architecture) '
        'signed-by=/etc/apt/keyrings/docker.gpg] '
        'https://download.docker.com/linux/ubuntu '
        '$(. /etc/os-release && echo "$VERSION_CODENAME") stable" '
        '> /etc/apt/sources.list.d/docker.list && '
        f'{APT} update'
    )
    ctx.host.run(
        f'{APT} install -y docker-ce docker-ce-cli containerd.io '
        'docker-buildx-plugin docker-compose-plugin'
    )
    ctx.host.run(
        f'usermod -aG docker {_q(_user(ctx))} && systemctl enable --now docker'
    )


def claude_code_installed(ctx: StepContext) -> bool:
    return ctx.host.succeeds(f'test -x {_q(_home(ctx))}/.local/bin/claude')


def install_claude_code(ctx: StepContext) -> None:
    _fetch_and_run_as_user(
        ctx, 'https://claude.ai/install.sh', '/tmp/claude-install.sh'
    )


def codex_installed(ctx: StepContext) -> bool:
    return ctx.host.succeeds(f'test -x {_q(_home(ctx))}/.npm-global/bin/codex')


def install_codex(ctx: StepContext) -> None:
    _run_as_user(ctx, 'npm install -g @openai/codex')


def tmp_cleanup_path(ctx: StepContext) -> str:
    return f'{_home(ctx)}/.local/bin/tmp-cleanup'


def tmp_cleanup_cron_line(ctx: StepContext) -> str:
    return (
        f'0 4 * * * {tmp_cleanup_path(ctx)} '
        f'--max-age {TMP_CLEANUP_MAX_AGE_DAYS} >/dev/null 2>&1'
    )


def tmp_cleanup_installed(ctx: StepContext) -> bool:
    user = _q(_user(ctx))
    return ctx.host.succeeds(
        f'test -x {_q(tmp_cleanup_path(ctx))} && '
        f'crontab -u {user} -l 2>/dev/null | grep -q tmp-cleanup'
    )


def install_tmp_cleanup(ctx: StepContext) -> None:
    """Install the temp-directory sweeper and schedule it daily at 04:00."""
    user = _user(ctx)
    target = tmp_cleanup_path(ctx)
    source = ctx.cfg.paths.tmp_cleanup_source
    owner = f'{user}:{user}'
    if source.startswith(('http://', 'https://')):
        ctx.host.run(
            f'mkdir -p {_q(str(Path(target).parent))} && '
            f'curl -fsSL {_q(source)} -o {_q(target)}'
        )
    else:
        text = Path(source).expanduser().read_text(encoding='utf-8')
        ctx.host.write_file(target, text, mode=0o755, owner=owner)
    ctx.host.run(
        f'chmod +x {_q(target)} && '
        f'chown -R {_q(owner)} {_q(_home(ctx))}/.local'
    )
    # The utility's own exit status is its only contract.
    _run_as_user(ctx, f'{_q(target)} --dry-run')
    _ensure_bashrc_line(
        ctx, '.local/bin', 'export PATH="$HOME/.local/bin:$PATH"'
    )
    line = tmp_cleanup_cron_line(ctx)
    ctx.host.run(
        f'(crontab -u {_q(user)} -l 2>/dev/null | grep -v tmp-cleanup; '
        f'echo {_q(line)}) | crontab -u {_q(user)} -'
    )


# -- service --------------------------------------------------------------------


def bun_installed(ctx: StepContext) -> bool:
    return ctx.host.succeeds(f'test -x {_q(_home(ctx))}/.bun/bin/bun')


def install_bun(ctx: StepContext) -> None:
    _fetch_and_run_as_user(ctx, 'https://bun.sh/install', '/tmp/bun-install.sh')
    _ensure_bashrc_line(ctx, '.bun/bin', 'export PATH="$HOME/.bun/bin:$PATH"')


def _openclaw_bin(ctx: StepContext) -> str:
    return f'{_home(ctx)}/.npm-global/bin/openclaw'


def _openclaw_config_target(ctx: StepContext) -> str:
    return f'{_home(ctx)}/.config/openclaw/config.json'


def openclaw_installed(ctx: StepContext) -> bool:
    if not ctx.host.succeeds(f'test -x {_q(_openclaw_bin(ctx))}'):
        return False
    if ctx.cfg.paths.openclaw_config:
        return ctx.host.exists(_openclaw_config_target(ctx))
    return True


def install_openclaw(ctx: StepContext) -> None:
    user = _user(ctx)
    _run_as_user(ctx, 'npm install -g openclaw')
    ctx.host.run(
        f'mkdir -p {_q(_home(ctx))}/.config/openclaw && '
        f'chown -R {_q(user)}:{_q(user)} {_q(_home(ctx))}/.config'
    )
    local_cfg = ctx.cfg.paths.openclaw_config
    if local_cfg:
        p = Path(local_cfg).expanduser()
        if not p.exists():
            raise ClawupError(f'openclaw_config does not exist: {p}')
        ctx.host.write_file(
            _openclaw_config_target(ctx),
            p.read_text(encoding='utf-8'),
            mode=0o600,
            owner=f'{user}:{user}',
        )


def _security_md_path(ctx: StepContext) -> str:
    return f'{_home(ctx)}/.openclaw/workspace/SECURITY.md'


def security_md_present(ctx: StepContext) -> bool:
    return ctx.host.exists(_security_md_path(ctx))


def install_security_md(ctx: StepContext) -> None:
    user = _user(ctx)
    target = _security_md_path(ctx)
    ctx.host.run(
        f'mkdir -p {_q(str(Path(target).parent))} && '
        f'curl -fsSL {_q(ctx.cfg.paths.security_md_url)} -o {_q(target)} && '
        f'chown -R {_q(user)}:{_q(user)} {_q(_home(ctx))}/.openclaw'
    )


def onboarding_done(ctx: StepContext) -> bool:
    """Onboarding leaves either the gateway unit or the user's OpenClaw config."""
    return ctx.host.succeeds(
        f'systemctl cat {SERVICE_NAME} >/dev/null 2>&1 || '
        f'test -f {_q(_home(ctx))}/.openclaw/openclaw.json'
    )


def run_onboarding(ctx: StepContext) -> None:
    _run_as_user(
        ctx,
        f'{_q(_openclaw_bin(ctx))} onboard --install-daemon',
        interactive=True,
        capture=False,
    )


def secrets_file_present(ctx: StepContext) -> bool:
    return ctx.host.exists(ctx.cfg.paths.secrets_file)


def create_secrets_file(ctx: StepContext) -> None:
    ensure_secrets_file(ctx.host, ctx.cfg.paths.secrets_file, owner='root:root')


def _op_binary(ctx: StepContext) -> str:
    return f'{_home(ctx)}/.local/bin/op'


def op_audit_installed(ctx: StepContext) -> bool:
    return ctx.host.exists(real_binary_path(_op_binary(ctx)))


def install_op_audit(ctx: StepContext) -> None:
    user = _user(ctx)
    install_audit_proxy(
        ctx.host,
        _op_binary(ctx),
        log_file=f'{_home(ctx)}/.openclaw/logs/op-audit.log',
        owner=f'{user}:{user}',
    )


def _security_audit_marker(ctx: StepContext) -> str:
    return f'{_home(ctx)}/.openclaw/.clawup-security-audit'


def security_audit_done(ctx: StepContext) -> bool:
    return ctx.host.exists(_security_audit_marker(ctx))


def run_security_audit(ctx: StepContext) -> None:
    user = _user(ctx)
    _run_as_user(ctx, f'{_q(_openclaw_bin(ctx))} security audit --fix')
    # Only reached when the audit exited zero.
    marker = _security_audit_marker(ctx)
    ctx.host.run(
        f'mkdir -p {_q(str(Path(marker).parent))} && touch {_q(marker)} && '
        f'chown {_q(user)}:{_q(user)} {_q(marker)}'
    )


def build_steps(cfg: ClawupConfig) -> list[Step]:
    """The ordered bootstrap sequence for ``cfg``.

    Later steps assume every earlier one has completed; order matters.
    """
    steps = [
        Step(
            'apt-refresh',
            REQUIRED,
            apt_refresh,
            check=apt_lists_fresh,
            description='Updating package lists',
        ),
        Step(
            'apt-upgrade',
            REQUIRED,
            apt_upgrade,
            check=packages_upgraded,
            description='Upgrading installed packages',
        ),
        Step(
            'base-packages',
            REQUIRED,
            install_base_packages,
            check=base_packages_installed,
            description='Installing required packages',
        ),
        Step(
            'admin-user',
            REQUIRED,
            create_admin_user,
            check=admin_user_exists,
            description=f'Creating user {cfg.user.name}',
        ),
        # Must precede hardening, which disables root login.
        Step(
            'admin-ssh-access',
            REQUIRED,
            grant_admin_ssh_access,
            check=admin_has_ssh_access,
            description=f'Setting up SSH access for {cfg.user.name}',
        ),
        Step(
            'ssh-hardening',
            REQUIRED,
            harden_ssh,
            check=ssh_hardened,
            description='Hardening SSH',
        ),
        Step(
            'firewall',
            REQUIRED,
            enable_firewall,
            check=firewall_active,
            description='Configuring firewall',
        ),
        Step(
            'fail2ban',
            REQUIRED,
            configure_fail2ban,
            check=fail2ban_configured,
            description='Configuring brute-force protection',
        ),
        Step(
            'swap',
            OPTIONAL,
            configure_swap,
            check=swap_active,
            description='Setting up swap',
        ),
        Step(
            'auto-updates',
            REQUIRED,
            enable_auto_updates,
            check=auto_updates_enabled,
            description='Enabling automatic security updates',
        ),
        Step(
            'homebrew',
            REQUIRED,
            install_homebrew,
            check=homebrew_installed,
            description='Installing Homebrew',
        ),
        Step(
            'compiler-tools',
            OPTIONAL,
            install_compiler_tools,
            check=compiler_tools_installed,
            description='Installing compiler tools',
        ),
        Step(
            'nodejs',
            REQUIRED,
            install_nodejs,
            check=nodejs_installed,
            description='Installing Node.js 22',
        ),
    ]
    if cfg.tools.install_docker:
        steps.append(
            Step(
                'docker',
                OPTIONAL,
                install_docker,
                check=docker_installed,
                description='Installing Docker',
            )
        )
    if cfg.tools.install_claude_code:
        steps.append(
            Step(
                'claude-code',
                OPTIONAL,
                install_claude_code,
                check=claude_code_installed,
                description='Installing Claude Code',
            )
        )
    if cfg.tools.install_codex:
        steps.append(
            Step(
                'codex',
                OPTIONAL,
                install_codex,
                check=codex_installed,
                description='Installing Codex',
            )
        )
    steps += [
        Step(
            'tmp-cleanup',
            OPTIONAL,
            install_tmp_cleanup,
            check=tmp_cleanup_installed,
            description='Installing /tmp cleanup cron',
        ),
        Step(
            'bun',
            REQUIRED,
            install_bun,
            check=bun_installed,
            description='Installing Bun runtime',
        ),
        Step(
            'openclaw',
            REQUIRED,
            install_openclaw,
            check=openclaw_installed,
            description='Installing OpenClaw',
        ),
        Step(
            'security-md',
            OPTIONAL,
            install_security_md,
            check=security_md_present,
            description='Installing SECURITY.md',
        ),
    ]
    if cfg.tools.run_onboarding:
        steps.append(
            handoff_step(
                'onboarding',
                run_onboarding,
                check=onboarding_done,
                description='OpenClaw Onboarding',
            )
        )
    steps += [
        Step(
            'secrets-file',
            REQUIRED,
            create_secrets_file,
            check=secrets_file_present,
            description='Setting up secrets file',
        ),
        Step(
            'op-audit-proxy',
            OPTIONAL,
            install_op_audit,
            check=op_audit_installed,
            description='Installing 1Password audit wrapper',
        ),
        Step(
            'security-audit',
            OPTIONAL,
            run_security_audit,
            check=security_audit_done,
            description='Running OpenClaw security audit',
        ),
    ]
    return steps
