from __future__ import annotations

import os
from pathlib import Path

import pytest

from clawup.audit import install_audit_proxy, interceptor_script, real_binary_path
from clawup.errors import StepNotApplicable
from clawup.hosts import LocalHost
from clawup.util import run_cmd


def test_interceptor_script_text() -> None:
    text = interceptor_script('/usr/bin/op.real', '/home/claw/logs/op.log', tag='op')
    lines = text.splitlines()
    assert lines[0] == '#!/bin/bash'
    assert 'mkdir -p /home/claw/logs' in lines
    assert 'echo "$(date -Iseconds) [op] $*" >> /home/claw/logs/op.log' in lines
    assert lines[-1] == 'exec /usr/bin/op.real "$@"'


def test_install_and_exec_through_proxy(tmp_path: Path) -> None:
    binary = tmp_path / 'bin' / 'op'
    binary.parent.mkdir()
    binary.write_text('#!/bin/bash\necho "real $*"\nexit 3\n')
    os.chmod(binary, 0o755)
    log_file = tmp_path / 'logs' / 'op-audit.log'
    host = LocalHost()

    assert install_audit_proxy(host, str(binary), log_file=str(log_file)) is True
    assert Path(real_binary_path(str(binary))).exists()
    assert (os.stat(binary).st_mode & 0o777) == 0o755

    res = run_cmd([str(binary), 'item', 'get', 'x'], check=False)
    assert res.code == 3
    assert res.stdout == 'real item get x\n'
    logged = log_file.read_text()
    assert '[op] item get x' in logged

    # second install is a no-op and keeps the real binary intact
    assert install_audit_proxy(host, str(binary), log_file=str(log_file)) is False
    assert 'echo "real' in Path(real_binary_path(str(binary))).read_text()


def test_missing_binary_not_applicable(tmp_path: Path) -> None:
    with pytest.raises(StepNotApplicable):
        install_audit_proxy(
            LocalHost(), str(tmp_path / 'op'), log_file=str(tmp_path / 'a.log')
        )


class FullDiskHost(LocalHost):
    def write_file(self, path, text, *, mode=None, owner=None):
        Path(path).write_text(text[:5])
        raise OSError(28, 'No space left on device')


class StuckRenameHost(LocalHost):
    """Renames fail once the interceptor is about to take the binary's name."""

    def rename(self, src, dst):
        if src.endswith('.clawup-tmp'):
            raise OSError(16, 'Device or resource busy')
        super().rename(src, dst)


def _fake_binary(tmp_path: Path) -> Path:
    binary = tmp_path / 'op'
    binary.write_text('#!/bin/bash\necho real\n')
    os.chmod(binary, 0o755)
    return binary


def test_failed_write_leaves_binary_in_place(tmp_path: Path) -> None:
    binary = _fake_binary(tmp_path)
    log_file = str(tmp_path / 'a.log')
    with pytest.raises(OSError):
        install_audit_proxy(FullDiskHost(), str(binary), log_file=log_file)
    assert binary.read_text() == '#!/bin/bash\necho real\n'
    assert not Path(real_binary_path(str(binary))).exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ['op']

    # a later run repairs instead of reporting "already installed"
    assert install_audit_proxy(LocalHost(), str(binary), log_file=log_file) is True
    assert Path(real_binary_path(str(binary))).read_text() == '#!/bin/bash\necho real\n'


def test_failed_swap_restores_binary(tmp_path: Path) -> None:
    binary = _fake_binary(tmp_path)
    with pytest.raises(OSError):
        install_audit_proxy(
            StuckRenameHost(), str(binary), log_file=str(tmp_path / 'a.log')
        )
    assert binary.read_text() == '#!/bin/bash\necho real\n'
    assert not Path(real_binary_path(str(binary))).exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ['op']
