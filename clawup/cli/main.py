"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ..cloud import ProvisionedServer, ServerState
from ..errors import ClawupError, RequiredStepError
from ..hosts import LocalHost
from ..pipeline import (
    connect,
    execution_log,
    existing_server,
    provision_server,
    render_final_summary,
    resolve_key,
    run_bootstrap,
    wait_for_server,
)
from ..readiness import print_progress
from ..steps import build_steps
from ..wizard import run_wizard
from ._common import (
    _BaseCommand,
    _cfg_path,
    _confirm_reuse_fn,
    _interactive,
    _load_cfg,
    _require_local_tools,
    log,
)
from .config import ConfigModalCLI


def _print_report_failure(err: RequiredStepError) -> int:
    if err.report is not None:
        print(err.report.render())
    # The report keeps one line per step; the full cause (remote stderr
    # included) goes to stderr unabridged.
    print(f'ERROR: {err}', file=sys.stderr)
    return 1


def _wait_with_progress(cfg, server, key) -> None:
    try:
        wait_for_server(cfg, server, key, progress=print_progress)
    finally:
        # Progress redraws a single line with no newline; end it first.
        print()


class UpCLI(_BaseCommand):
    """Create a server, wait for it, secure it, and install OpenClaw."""

    wizard = scfg.Value(
        None,
        isflag=True,
        help='Run the interactive wizard (default: when stdin is a TTY and tools.run_wizard).',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        _require_local_tools()
        want_wizard = args.wizard
        if want_wizard is None:
            want_wizard = cfg.tools.run_wizard and _interactive()
        if want_wizard and run_wizard(cfg) is None:
            return 0
        if not cfg.cloud.token:
            raise ClawupError(
                'No API token. Set HETZNER_TOKEN or run interactively.'
            )
        key = resolve_key(cfg, confirm_reuse=_confirm_reuse_fn(yes=bool(args.yes)))
        print(f'SSH key: {key.private_key_path} ({key.fingerprint})')
        server = provision_server(cfg, key)
        print(f'Server created: {server.public_address}')
        print('Waiting for server to boot...')
        _wait_with_progress(cfg, server, key)
        print('Server is up and reachable.')
        host = connect(cfg, server.public_address, key)
        with execution_log(cfg) as log_path:
            try:
                report = run_bootstrap(cfg, host, server, log_path=log_path)
            except RequiredStepError as err:
                return _print_report_failure(err)
        print(report.render())
        print()
        print(render_final_summary(cfg, server.public_address, key))
        return 0


class KeyCLI(_BaseCommand):
    """Ensure the dedicated SSH key exists and print its fingerprint."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        _require_local_tools()
        key = resolve_key(cfg, confirm_reuse=_confirm_reuse_fn(yes=bool(args.yes)))
        print(f'private_key = {key.private_key_path}')
        print(f'public_key  = {key.public_key_path}')
        print(f'fingerprint = {key.fingerprint}')
        return 0


class ProvisionCLI(_BaseCommand):
    """Register the key and create one server; print its address."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        _require_local_tools()
        if not cfg.cloud.token:
            raise ClawupError('No API token. Set HETZNER_TOKEN.')
        key = resolve_key(cfg, confirm_reuse=_confirm_reuse_fn(yes=bool(args.yes)))
        server = provision_server(cfg, key)
        print(server.public_address)
        return 0


class WaitCLI(_BaseCommand):
    """Poll an address until it accepts SSH with the configured key."""

    address = scfg.Value('', help='Public IPv4 address of the server.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        if not args.address:
            raise RuntimeError('--address is required.')
        cfg = _load_cfg(args.config)
        _require_local_tools()
        key = resolve_key(cfg, confirm_reuse=_confirm_reuse_fn(yes=True))
        server = ProvisionedServer(
            id='', public_address=args.address, state=ServerState.BOOTING
        )
        _wait_with_progress(cfg, server, key)
        print(f'{args.address} is reachable.')
        return 0


class BootstrapCLI(_BaseCommand):
    """Run the setup Steps against an existing machine; safe to re-run."""

    address = scfg.Value('', help='Public IPv4 address of the server.')
    local = scfg.Value(
        False,
        isflag=True,
        help='Run the Steps on this machine (must be root) instead of over SSH.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        if bool(args.local) == bool(args.address):
            raise RuntimeError('Pass exactly one of --address or --local.')
        if args.local:
            if os.geteuid() != 0:
                raise ClawupError('bootstrap --local must run as root.')
            host = LocalHost()
            server = None
            key = None
        else:
            _require_local_tools()
            key = resolve_key(
                cfg, confirm_reuse=_confirm_reuse_fn(yes=bool(args.yes))
            )
            host = connect(cfg, args.address, key, select=True)
            server = existing_server(args.address)
        with execution_log(cfg) as log_path:
            try:
                report = run_bootstrap(cfg, host, server, log_path=log_path)
            except RequiredStepError as err:
                return _print_report_failure(err)
        print(report.render())
        if key is not None:
            print()
            print(render_final_summary(cfg, args.address, key))
        return 0


class PlanCLI(_BaseCommand):
    """List the setup Steps, in order, for the current config."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        steps = build_steps(cfg)
        print(f'Config: {_cfg_path(args.config)}')
        print(
            f'Server: {cfg.server.server_type} in {cfg.server.location} '
            f'| user={cfg.user.name}'
        )
        print('')
        for idx, step in enumerate(steps, start=1):
            extra = ' (interactive)' if step.interactive else ''
            print(f'  {idx:2d}. [{step.tag.value}] {step.name}{extra}')
        return 0


class ClawupModalCLI(scfg.ModalCLI):
    """Provision and secure a personal OpenClaw server."""

    config = ConfigModalCLI
    up = UpCLI
    key = KeyCLI
    provision = ProvisionCLI
    wait = WaitCLI
    bootstrap = BootstrapCLI
    plan = PlanCLI


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    config_value = None
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    if '--config' in argv:
        try:
            config_value = argv[argv.index('--config') + 1]
        except IndexError:
            pass
    try:
        if config_value is not None or _cfg_path(None).exists():
            verbosity = _load_cfg(config_value).verbosity
    except Exception:
        verbosity = 1

    explicit_verbose = _count_verbose(argv)
    _setup_logging(explicit_verbose, verbosity)

    try:
        rc = ClawupModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled clawup error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


def _normalize_argv(argv: list[str]) -> list[str]:
    """Accept ``init`` as shorthand and a bare address after wait/bootstrap."""
    if len(argv) >= 1 and argv[0] == 'init':
        return ['config', 'init', *argv[1:]]
    if len(argv) >= 2 and argv[0] in {'wait', 'bootstrap'}:
        if not argv[1].startswith('-'):
            return [argv[0], '--address', argv[1], *argv[2:]]
    return argv


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
