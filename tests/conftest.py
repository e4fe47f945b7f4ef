"""
Pytest configuration and shared fixtures for MIMO installer tests.

Every host path lives under ``tmp_path`` and every external command goes
through a mocked CommandRunner, so no test touches the real system.
"""

import hashlib
import io
import json
import tarfile
import pytest
from unittest.mock import MagicMock, patch
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# ============ Context Fixtures ============

@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    """A scratch directory standing in for ``/``."""
    root = tmp_path / "host"
    (root / "etc" / "default").mkdir(parents=True)
    (root / "etc" / "update-motd.d").mkdir(parents=True)
    return root


@pytest.fixture
def update_context(tmp_path: Path, host_root: Path):
    """An UpdateContext whose every path points inside tmp_path."""
    from mimo_update.context import UpdateContext

    return UpdateContext(
        mimo_root=host_root / "usr" / "local" / "mimo",
        work_dir=tmp_path / "work",
        grub_file=host_root / "etc" / "default" / "grub",
        initramfs_script=host_root / "etc" / "initramfs-tools" / "scripts" / "init-top" / "mimo-msg",
        motd_dir=host_root / "etc" / "update-motd.d",
        backup_root=tmp_path / "backup",
        profile_path=host_root / "etc" / "profile.d" / "mimo_root.sh",
        target_socket=tmp_path / "spdk.sock",
        target_config_path=tmp_path / "spdk_full_config.json",
        cloud_dir=host_root / "etc" / "cloud",
        bundle_archive=tmp_path / "resources.tar.gz",
    )


# ============ Subprocess Fixtures ============

@pytest.fixture
def mock_runner():
    """A CommandRunner whose commands all succeed."""
    from mimo_update.runner import CommandRunner

    runner = MagicMock(spec=CommandRunner)
    runner.run.return_value = MagicMock(returncode=0, stdout="", stderr="")
    runner.succeeds.return_value = True
    runner.stream.return_value = 0
    runner.spawn.return_value = 4242
    return runner


@pytest.fixture
def mock_subprocess():
    """Patch subprocess.run as seen by CommandRunner; commands succeed silently."""
    with patch("mimo_update.runner.subprocess.run") as run:
        run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield run


@pytest.fixture
def as_root():
    """Pretend the test process runs as root."""
    with patch('os.geteuid', return_value=0):
        yield


# ============ Bundle Fixtures ============

def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes, mode: int = 0o644):
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    tar.addfile(info, io.BytesIO(data))


@pytest.fixture
def make_bundle(tmp_path: Path):
    """
    Factory building ``resources.tar.gz`` plus its ``resources.sha256``.

    ``files`` maps archive names to contents (str or bytes); ``config`` is
    written as ``config.json`` at the archive root.
    """
    def _make(files=None, config=None, archive=None, extra=None):
        archive = Path(archive or tmp_path / "resources.tar.gz")
        with tarfile.open(archive, "w:gz") as tar:
            if config is not None:
                _add_bytes(tar, "config.json", json.dumps(config).encode())
            for name, content in (files or {}).items():
                data = content.encode() if isinstance(content, str) else content
                mode = 0o755 if name.endswith(".sh") else 0o644
                _add_bytes(tar, name, data, mode)
            if extra:
                extra(tar)
        digest = hashlib.sha256(archive.read_bytes()).hexdigest()
        archive.with_name("resources.sha256").write_text(f"{digest}  {archive.name}\n")
        return archive

    return _make


# ============ Marker Configuration ============

def pytest_configure(config):
    """Register the markers used across the suite."""
    for marker in (
        "unit: fast tests against a scratch directory and mocked commands",
        "integration: end-to-end updater runs against a scratch host tree",
    ):
        config.addinivalue_line("markers", marker)
