"""Interactive local setup dialogue run before provisioning."""

from __future__ import annotations

import getpass
import re
import textwrap
from typing import Callable

from loguru import logger

from .cloud import LOCATIONS, SIZE_CLASSES, HetznerControlPlane
from .config import ClawupConfig

log = logger

USERNAME_RE = re.compile(r'^[a-z_][a-z0-9_-]{0,31}$')

TOKEN_HELP = textwrap.dedent(
    """
      No problem! Here's how to get one:

      1. Go to https://console.hetzner.cloud/ and create an account.
      2. Create a new Project (or use the default one).
      3. Inside the project, open Security in the left sidebar.
      4. Open the API Tokens tab, then Generate API Token.
      5. Name it (like "clawup"), select Read & Write, and Generate.
      6. Copy the token now; it will not be shown again.
    """
)


def ask_yes_no(prompt: str, default: bool = True, *, input_fn=input) -> bool:
    hint = '[Y/n]' if default else '[y/N]'
    while True:
        raw = input_fn(f'  {prompt} {hint}: ').strip().lower()
        if not raw:
            return default
        if raw in {'y', 'yes'}:
            return True
        if raw in {'n', 'no'}:
            return False
        print('  Please answer y or n.')


def _choose(
    title: str,
    options: list[tuple[str, str, str]],
    default_code: str,
    *,
    input_fn=input,
) -> str:
    print(f'  {title}:')
    print()
    default_idx = 1
    for idx, (code, label, summary) in enumerate(options, start=1):
        if code == default_code:
            default_idx = idx
        print(f'    {idx})  {label} ({code}): {summary}')
    print()
    raw = input_fn(f'  Choice [{default_idx}]: ').strip()
    if not raw:
        return options[default_idx - 1][0]
    if raw.isdigit() and 1 <= int(raw) <= len(options):
        return options[int(raw) - 1][0]
    log.warning('Invalid choice {!r}; using {}', raw, options[default_idx - 1][0])
    return options[default_idx - 1][0]


def _section(title: str) -> None:
    print(f'\n── {title} ──\n')


def prompt_token(
    cfg: ClawupConfig,
    *,
    input_fn=input,
    secret_fn: Callable[[str], str] = getpass.getpass,
    validate: Callable[[str], bool] | None = None,
) -> str:
    """Ask until the control plane accepts a token. It is never written to disk."""
    if validate is None:

        def validate(token: str) -> bool:
            api = HetznerControlPlane(
                token, base_url=cfg.cloud.api_url, timeout=cfg.cloud.timeout_s
            )
            return api.check_token()

    while True:
        if not ask_yes_no('Do you have your Hetzner API key ready?', input_fn=input_fn):
            print(TOKEN_HELP)
            input_fn('  Press Enter when you have your token... ')
        print('  Your token is only used during this setup and is never saved.')
        token = ''
        while not token:
            token = secret_fn('  Paste your Hetzner API token: ').strip()
            if not token:
                print("  Token can't be empty.")
        print('  Checking token with Hetzner... ', end='', flush=True)
        if validate(token):
            print('valid!')
            return token
        print('invalid')
        print("  That token didn't work. Let's try again.\n")


def render_plan_summary(cfg: ClawupConfig) -> str:
    def yn(flag: bool) -> str:
        return 'yes' if flag else 'no'

    return '\n'.join(
        [
            f'  Server:      {cfg.server.server_type} in {cfg.server.location}',
            f'  User:        {cfg.user.name}',
            f'  Docker:      {yn(cfg.tools.install_docker)}',
            f'  Claude Code: {yn(cfg.tools.install_claude_code)}',
            f'  Codex:       {yn(cfg.tools.install_codex)}',
            '  OpenClaw:    always',
        ]
    )


def run_wizard(
    cfg: ClawupConfig,
    *,
    input_fn=input,
    secret_fn: Callable[[str], str] = getpass.getpass,
    validate: Callable[[str], bool] | None = None,
) -> ClawupConfig | None:
    """Fill ``cfg`` in from operator answers; None when the summary is declined."""
    print(
        textwrap.dedent(
            """
            clawup: one command, one secure OpenClaw server.

              This wizard will:
                1. Create a cloud server for you on Hetzner
                2. Secure it (firewall, brute-force protection, key-only access)
                3. Install OpenClaw and start it up
            """
        )
    )
    _section('Hetzner API Key')
    if cfg.cloud.token:
        print('  Using the API token from the environment.')
    else:
        cfg.cloud.token = prompt_token(
            cfg, input_fn=input_fn, secret_fn=secret_fn, validate=validate
        )

    _section('Server Size')
    cfg.server.server_type = _choose(
        'Pick a server size',
        SIZE_CLASSES,
        cfg.server.server_type,
        input_fn=input_fn,
    )
    _section('Server Location')
    cfg.server.location = _choose(
        'Pick a location', LOCATIONS, cfg.server.location, input_fn=input_fn
    )

    _section('User Account')
    print('  Username for the server (runs OpenClaw, not root).')
    raw = input_fn(f'  Username [{cfg.user.name}]: ').strip()
    if raw:
        if USERNAME_RE.match(raw):
            cfg.user.name = raw
        else:
            log.warning('Invalid username {!r}, using default: {}', raw, cfg.user.name)

    _section('Optional Tools')
    print('  Always installed: Node.js 22, Homebrew, OpenClaw')
    cfg.tools.install_docker = ask_yes_no('Docker?', input_fn=input_fn)
    cfg.tools.install_claude_code = ask_yes_no(
        'Claude Code? (Anthropic CLI)', input_fn=input_fn
    )
    cfg.tools.install_codex = ask_yes_no('Codex? (OpenAI CLI)', input_fn=input_fn)

    _section('Almost Ready')
    print('  After setup, OpenClaw will ask for the API keys of the services')
    print('  you want (model provider key, Telegram bot token, 1Password token).')

    _section('Summary')
    print(render_plan_summary(cfg))
    print()
    if not ask_yes_no('Create the server and start setup?', input_fn=input_fn):
        print('Cancelled.')
        return None
    return cfg
