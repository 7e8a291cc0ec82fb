"""Tests for the interactive setup dialogue with scripted answers."""

from __future__ import annotations

from clawup.config import ClawupConfig
from clawup.wizard import ask_yes_no, prompt_token, render_plan_summary, run_wizard


def _scripted(answers):
    it = iter(answers)
    return lambda prompt='': next(it)


def test_ask_yes_no_defaults_and_retries(capsys) -> None:
    assert ask_yes_no('x?', True, input_fn=_scripted([''])) is True
    assert ask_yes_no('x?', False, input_fn=_scripted([''])) is False
    assert ask_yes_no('x?', input_fn=_scripted(['maybe', 'N'])) is False
    assert 'Please answer y or n.' in capsys.readouterr().out


def test_prompt_token_retries_until_valid() -> None:
    seen = []

    def validate(token):
        seen.append(token)
        return token == 'good'

    token = prompt_token(
        ClawupConfig(),
        input_fn=_scripted(['y', 'y']),
        secret_fn=_scripted(['', 'bad', 'good']),
        validate=validate,
    )
    assert token == 'good'
    assert seen == ['bad', 'good']


def test_run_wizard_fills_config() -> None:
    cfg = ClawupConfig()
    answers = [
        'y',  # token ready
        '3',  # size: cpx31
        '4',  # location: hel1
        'ops',  # username
        'n',  # docker
        '',  # claude code
        'y',  # codex
        '',  # confirm
    ]
    out = run_wizard(
        cfg,
        input_fn=_scripted(answers),
        secret_fn=_scripted(['tok']),
        validate=lambda t: True,
    )
    assert out is cfg
    assert cfg.cloud.token == 'tok'
    assert cfg.server.server_type == 'cpx31'
    assert cfg.server.location == 'hel1'
    assert cfg.user.name == 'ops'
    assert cfg.tools.install_docker is False
    assert cfg.tools.install_claude_code is True
    assert cfg.tools.install_codex is True


def test_run_wizard_keeps_defaults_on_bad_input() -> None:
    cfg = ClawupConfig()
    cfg.cloud.token = 'from-env'
    answers = ['9', '', 'Bad User!', '', '', '', '']
    run_wizard(cfg, input_fn=_scripted(answers), secret_fn=_scripted([]))
    assert cfg.cloud.token == 'from-env'
    assert cfg.server.server_type == 'cpx21'
    assert cfg.server.location == 'ash'
    assert cfg.user.name == 'claw'


def test_run_wizard_declined_summary(capsys) -> None:
    cfg = ClawupConfig()
    cfg.cloud.token = 'from-env'
    answers = ['', '', '', '', '', '', 'n']
    assert run_wizard(cfg, input_fn=_scripted(answers), secret_fn=_scripted([])) is None
    assert capsys.readouterr().out.rstrip().endswith('Cancelled.')


def test_render_plan_summary() -> None:
    cfg = ClawupConfig()
    cfg.tools.install_docker = False
    text = render_plan_summary(cfg)
    assert 'cpx21 in ash' in text
    assert 'Docker:      no' in text
    assert 'OpenClaw:    always' in text
