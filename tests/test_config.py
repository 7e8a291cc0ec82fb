"""Tests for config loading, dumping, and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from clawup.config import ClawupConfig, apply_env_overrides, dump_toml, load, save


def test_dump_load_roundtrip(tmp_path: Path) -> None:
    cfg = ClawupConfig()
    cfg.server.name = 'my "claw"'
    cfg.server.server_type = 'cpx31'
    cfg.user.name = 'ops'
    cfg.tools.install_codex = False
    cfg.paths.state_dir = '~/code/${USER}/state'
    cfg.probe.max_attempts = 12
    cfg.verbosity = 3
    fpath = tmp_path / '.clawup.toml'
    save(fpath, cfg)

    cfg2 = load(fpath)
    assert cfg2.server.name == cfg.server.name
    assert cfg2.server.server_type == 'cpx31'
    assert cfg2.user.name == 'ops'
    assert cfg2.tools.install_codex is False
    assert cfg2.paths.state_dir == cfg.paths.state_dir
    assert cfg2.probe.max_attempts == 12
    assert cfg2.verbosity == 3


def test_token_is_never_written(tmp_path: Path) -> None:
    cfg = ClawupConfig()
    cfg.cloud.token = 'sekrit-token'
    text = dump_toml(cfg)
    assert 'sekrit-token' not in text
    assert 'token' not in text
    fpath = save(tmp_path / 'c.toml', cfg)
    assert load(fpath).cloud.token == ''


def test_dump_toml_verbosity_default_omitted() -> None:
    text = dump_toml(ClawupConfig())
    assert 'verbosity =' not in text


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    fpath = tmp_path / 'c.toml'
    fpath.write_text('[server]\nlocation = "fsn1"\nbogus = 1\n[nope]\nx = 1\n')
    cfg = load(fpath)
    assert cfg.server.location == 'fsn1'
    assert not hasattr(cfg.server, 'bogus')


def test_env_overrides() -> None:
    cfg = ClawupConfig()
    environ = {
        'HETZNER_TOKEN': 'abc',
        'SERVER_TYPE': 'cpx41',
        'SERVER_LOCATION': 'hel1',
        'NEW_USER': 'ops',
        'SSH_PORT': '2222',
        'OPENCLAW_PORT': '',
        'INSTALL_DOCKER': 'false',
        'INSTALL_CODEX': 'yes',
        'RUN_WIZARD': '0',
    }
    apply_env_overrides(cfg, environ)
    assert cfg.cloud.token == 'abc'
    assert cfg.server.server_type == 'cpx41'
    assert cfg.server.location == 'hel1'
    assert cfg.user.name == 'ops'
    assert cfg.user.ssh_port == 2222
    # empty values leave the default in place
    assert cfg.user.service_port == 7860
    assert cfg.tools.install_docker is False
    assert cfg.tools.install_codex is True
    assert cfg.tools.run_wizard is False


def test_env_override_bad_int() -> None:
    with pytest.raises(RuntimeError, match='SSH_PORT'):
        apply_env_overrides(ClawupConfig(), {'SSH_PORT': 'twenty-two'})


def test_expanded_paths_expands_env(monkeypatch) -> None:
    monkeypatch.setenv('CLAWUP_TEST_DIR', '/tmp/clawup-x')
    cfg = ClawupConfig()
    cfg.paths.state_dir = '$CLAWUP_TEST_DIR/state'
    cfg.paths.ssh_key_path = '$CLAWUP_TEST_DIR/id_ed25519'
    out = cfg.expanded_paths()
    assert out.paths.state_dir == '/tmp/clawup-x/state'
    assert out.paths.ssh_key_path == '/tmp/clawup-x/id_ed25519'


def test_state_dir_created(tmp_path: Path) -> None:
    cfg = ClawupConfig()
    cfg.paths.state_dir = str(tmp_path / 'state')
    assert cfg.state_dir().is_dir()
