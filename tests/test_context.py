"""
Tests for the per-run context, MIMO_ROOT handling, and template rendering.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest


class TestUpdateContext:

    @pytest.mark.unit
    def test_defaults(self):
        from mimo_update.context import UpdateContext

        ctx = UpdateContext()
        assert ctx.work_dir == Path("/tmp/mimo-output")
        assert ctx.config_path == Path("/tmp/mimo-output/config.json")
        assert ctx.bundle_checksum == Path("/usr/share/mimo/resources.sha256")
        assert ctx.run_backup_dir.parent == Path("/var/lib/mimo/backup")
        assert ctx.run_backup_dir.name.endswith(f"-{os.getpid()}")

    @pytest.mark.unit
    def test_backup_dir_fixed_per_context(self, tmp_path):
        from mimo_update.context import UpdateContext

        ctx = UpdateContext(backup_root=tmp_path)
        first = ctx.run_backup_dir
        assert ctx.run_backup_dir == first
        assert first.parent == tmp_path

    @pytest.mark.unit
    def test_derived_target_paths(self, tmp_path):
        from mimo_update.context import UpdateContext

        ctx = UpdateContext(mimo_root=tmp_path / "mimo")
        assert ctx.rpc_script == tmp_path / "mimo" / "scripts" / "rpc.py"
        assert ctx.target_binary == tmp_path / "mimo" / "build" / "bin" / "spdk_tgt"

    @pytest.mark.unit
    def test_from_environment_uses_mimo_root(self, tmp_path):
        from mimo_update.context import UpdateContext

        ctx = UpdateContext.from_environment({"MIMO_ROOT": "/opt/mimo"}, work_dir=tmp_path)
        assert ctx.mimo_root == Path("/opt/mimo")
        assert ctx.work_dir == tmp_path

    @pytest.mark.unit
    def test_from_environment_default_root(self):
        from mimo_update.context import DEFAULT_MIMO_ROOT, UpdateContext

        assert UpdateContext.from_environment({}).mimo_root == DEFAULT_MIMO_ROOT

    @pytest.mark.unit
    def test_explicit_checksum_kept(self, tmp_path):
        from mimo_update.context import UpdateContext

        ctx = UpdateContext(bundle_archive=tmp_path / "r.tar.gz",
                            bundle_checksum=tmp_path / "custom.sha256")
        assert ctx.bundle_checksum == tmp_path / "custom.sha256"


class TestEnsureMimoRoot:

    @pytest.mark.unit
    def test_existing_value_untouched(self, tmp_path):
        from mimo_update.context import ensure_mimo_root

        env = {"MIMO_ROOT": "/opt/mimo"}
        profile = tmp_path / "mimo_root.sh"
        assert ensure_mimo_root(env, profile) == Path("/opt/mimo")
        assert not profile.exists()

    @pytest.mark.unit
    def test_sets_and_persists_default(self, tmp_path):
        from mimo_update.context import ensure_mimo_root

        env = {}
        profile = tmp_path / "profile.d" / "mimo_root.sh"
        root = ensure_mimo_root(env, profile)

        assert root == Path("/usr/local/mimo")
        assert env["MIMO_ROOT"] == "/usr/local/mimo"
        assert profile.read_text().strip() == "export MIMO_ROOT=/usr/local/mimo"

    @pytest.mark.unit
    def test_persist_failure_only_warns(self, tmp_path, caplog):
        from mimo_update.context import ensure_mimo_root

        env = {}
        with patch("mimo_update.context.atomic_write_text", side_effect=PermissionError("denied")):
            root = ensure_mimo_root(env, tmp_path / "mimo_root.sh")

        assert root == Path("/usr/local/mimo")
        assert env["MIMO_ROOT"] == "/usr/local/mimo"
        assert "Failed to persist MIMO_ROOT" in caplog.text


class TestTemplateLoader:

    @pytest.mark.unit
    def test_lists_packaged_templates(self):
        from mimo_update.templates import TemplateLoader

        names = TemplateLoader().list_templates()
        assert "initramfs-msg.sh.j2" in names
        assert "mimo-root.sh.j2" in names

    @pytest.mark.unit
    def test_render_initramfs_script(self):
        from mimo_update.templates import TemplateLoader

        text = TemplateLoader().render("initramfs-msg.sh.j2", banner="Booting")
        assert text.startswith("#!/bin/sh\n")
        assert 'echo ">>> Booting <<<" > /dev/console' in text

    @pytest.mark.unit
    def test_additional_path_adds_templates(self, tmp_path):
        from mimo_update.templates import TemplateLoader

        (tmp_path / "extra.j2").write_text("{{ value }}")
        loader = TemplateLoader(extra_dirs=[tmp_path])
        assert loader.render("extra.j2", value="ok") == "ok"

    @pytest.mark.unit
    def test_missing_template(self):
        from mimo_common.exceptions import TemplateNotFoundError
        from mimo_update.templates import TemplateLoader

        with pytest.raises(TemplateNotFoundError):
            TemplateLoader().render("nope.j2")
