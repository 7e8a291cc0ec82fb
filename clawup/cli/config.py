from __future__ import annotations

import sys

import scriptconfig as scfg

from ..config import ClawupConfig, dump_toml, save
from ._common import _BaseCommand, _cfg_path, _load_cfg


class InitCLI(_BaseCommand):
    """Write a config file with the default settings."""

    force = scfg.Value(
        False,
        isflag=True,
        help='Overwrite an existing config file.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        save(path, ClawupConfig())
        print(f'Wrote config: {path}')
        print('The API token is not stored; export HETZNER_TOKEN before `clawup up`.')
        return 0


class ConfigShowCLI(_BaseCommand):
    """Show the resolved config (file plus environment overrides)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        cfg = _load_cfg(args.config)
        print(f'# Config: {path}{"" if path.exists() else " (not found, defaults)"}')
        print(f'# API token: {"set" if cfg.cloud.token else "not set"}')
        print(dump_toml(cfg), end='')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config file management commands."""

    init = InitCLI
    show = ConfigShowCLI
