"""Remote execution channel: SSH-backed and local hosts that steps run against."""

from __future__ import annotations

import os
import shlex
import shutil
from pathlib import Path

from loguru import logger

from .errors import ClawupError, MissingSSHIdentityError
from .util import CmdError, CmdResult, run_cmd

log = logger


def require_ssh_identity(identity: str | Path) -> str:
    ident = str(identity or '').strip()
    if not ident:
        raise MissingSSHIdentityError(
            'No SSH identity configured; run `clawup key` or set paths.ssh_key_path.'
        )
    return ident


def ssh_base_args(
    ident: str,
    *,
    strict_host_key_checking: str = 'accept-new',
    connect_timeout: int | None = None,
    batch_mode: bool = False,
    user_known_hosts_file: str | None = None,
    port: int | None = None,
) -> list[str]:
    args: list[str] = []
    if batch_mode:
        args.extend(['-o', 'BatchMode=yes'])
    if connect_timeout is not None:
        args.extend(['-o', f'ConnectTimeout={connect_timeout}'])
    args.extend(['-o', f'StrictHostKeyChecking={strict_host_key_checking}'])
    if user_known_hosts_file:
        args.extend(['-o', f'UserKnownHostsFile={user_known_hosts_file}'])
    if port is not None and int(port) != 22:
        args.extend(['-p', str(port)])
    args.extend(['-o', 'IdentitiesOnly=yes', '-i', ident])
    return args


def as_user(user: str, command: str) -> str:
    """Wrap ``command`` so it runs in ``user``'s login shell."""
    return f'su - {shlex.quote(user)} -c {shlex.quote(command)}'


class Host:
    """Command and file primitives a bootstrap step needs on its target.

    Subclasses implement :meth:`run`; the file helpers are expressed as
    shell so they work unchanged over SSH.
    """

    login = 'root'

    def describe(self) -> str:
        raise NotImplementedError

    def run(
        self,
        script: str,
        *,
        check: bool = True,
        capture: bool = True,
        interactive: bool = False,
        input_text: str | None = None,
    ) -> CmdResult:
        raise NotImplementedError

    def switch_login(self, user: str) -> None:
        """Connect as ``user`` from now on (no-op for hosts without a login)."""

    def succeeds(self, script: str) -> bool:
        return self.run(script, check=False).code == 0

    def probe(self) -> bool:
        return self.succeeds('true')

    def exists(self, path: str) -> bool:
        return self.succeeds(f'test -e {shlex.quote(path)}')

    def read_text(self, path: str) -> str | None:
        res = self.run(f'cat {shlex.quote(path)}', check=False)
        if res.code != 0:
            return None
        return res.stdout

    def write_file(
        self,
        path: str,
        text: str,
        *,
        mode: int | None = None,
        owner: str | None = None,
    ) -> None:
        q = shlex.quote(path)
        parts = [f'mkdir -p {shlex.quote(os.path.dirname(path) or "/")}']
        parts.append(f'cat > {q}')
        if mode is not None:
            parts.append(f'chmod {mode:04o} {q}')
        if owner:
            parts.append(f'chown {shlex.quote(owner)} {q}')
        # The redirect reads the file body from stdin.
        self.run(' && '.join(parts), input_text=text)

    def rename(self, src: str, dst: str) -> None:
        self.run(f'mv {shlex.quote(src)} {shlex.quote(dst)}')


class SSHHost(Host):
    """Runs scripts on a remote machine through ``ssh``.

    When logged in as anyone but root, scripts are run via ``sudo -n`` so
    that steps can stay written as root operations.
    """

    def __init__(
        self,
        address: str,
        identity: str | Path,
        *,
        login: str = 'root',
        port: int = 22,
        known_hosts: str | Path | None = None,
        connect_timeout: int = 10,
    ):
        self.address = address
        self.identity = require_ssh_identity(identity)
        self.login = login
        self.port = port
        self.known_hosts = str(known_hosts) if known_hosts else None
        self.connect_timeout = connect_timeout

    def describe(self) -> str:
        return f'{self.login}@{self.address}'

    def switch_login(self, user: str) -> None:
        if user != self.login:
            log.debug('Switching SSH login {} -> {}', self.login, user)
        self.login = user

    def select_login(self, candidates: list[str]) -> str:
        """Use the first of ``candidates`` that can log in.

        A re-run against an already hardened server can no longer log in
        as root, so the admin user is tried first.
        """
        for user in candidates:
            self.login = user
            if self.probe():
                log.info('Connected to {} as {}', self.address, user)
                return user
        raise ClawupError(
            f'Could not log in to {self.address} as any of: {", ".join(candidates)}'
        )

    def ssh_args(self, *, interactive: bool = False) -> list[str]:
        args = [
            'ssh',
            *ssh_base_args(
                self.identity,
                batch_mode=not interactive,
                connect_timeout=self.connect_timeout,
                user_known_hosts_file=self.known_hosts,
                port=self.port,
            ),
        ]
        if interactive:
            args.append('-t')
        return args

    def remote_command(self, script: str) -> str:
        cmd = f'bash -lc {shlex.quote(script)}'
        if self.login != 'root':
            cmd = f'sudo -n {cmd}'
        return cmd

    def run(
        self,
        script: str,
        *,
        check: bool = True,
        capture: bool = True,
        interactive: bool = False,
        input_text: str | None = None,
    ) -> CmdResult:
        cmd = [
            *self.ssh_args(interactive=interactive),
            f'{self.login}@{self.address}',
            self.remote_command(script),
        ]
        return run_cmd(
            cmd,
            check=check,
            capture=capture and not interactive,
            input_text=input_text,
        )


class LocalHost(Host):
    """Runs the same steps on the current machine (must already be root)."""

    def describe(self) -> str:
        return 'localhost'

    def run(
        self,
        script: str,
        *,
        check: bool = True,
        capture: bool = True,
        interactive: bool = False,
        input_text: str | None = None,
    ) -> CmdResult:
        return run_cmd(
            ['bash', '-lc', script],
            check=check,
            capture=capture and not interactive,
            input_text=input_text,
        )

    def probe(self) -> bool:
        return True

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def read_text(self, path: str) -> str | None:
        try:
            return Path(path).read_text(encoding='utf-8')
        except OSError:
            return None

    def write_file(
        self,
        path: str,
        text: str,
        *,
        mode: int | None = None,
        owner: str | None = None,
    ) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding='utf-8')
        if mode is not None:
            os.chmod(p, mode)
        if owner:
            user, _, group = owner.partition(':')
            try:
                shutil.chown(p, user=user, group=group or None)
            except (LookupError, PermissionError) as ex:
                raise CmdError(
                    f'chown {owner} {path}', CmdResult(1, '', str(ex))
                ) from ex

    def rename(self, src: str, dst: str) -> None:
        os.replace(src, dst)
