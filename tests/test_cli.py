"""
Tests for the mimo-update command line.

UpdateManager is patched out; these tests cover argument handling, exit
codes, and how failures are reported.
"""

import json
import logging
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestArguments:

    @pytest.mark.unit
    def test_update_requires_mode(self):
        from mimo_update.cli import build_parser

        with pytest.raises(SystemExit):
            build_parser().parse_args(["update"])

    @pytest.mark.unit
    def test_sys_and_target_are_exclusive(self):
        from mimo_update.cli import build_parser

        with pytest.raises(SystemExit):
            build_parser().parse_args(["update", "--sys", "--target"])

    @pytest.mark.unit
    def test_global_options(self):
        from mimo_update.cli import build_parser

        args = build_parser().parse_args(
            ["-v", "--log-file", "/tmp/x.log", "--json-logs", "update", "--target", "-y"]
        )
        assert args.verbose and args.json_logs and args.yes and args.target
        assert args.log_file == "/tmp/x.log"

    @pytest.mark.unit
    def test_no_command_prints_help(self, capsys):
        from mimo_update.cli import main

        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestConfirm:

    @pytest.mark.unit
    @pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), ("n", False), ("", False)])
    def test_answers(self, answer, expected):
        from mimo_update.cli import confirm

        with patch("builtins.input", return_value=answer):
            assert confirm("? ") is expected

    @pytest.mark.unit
    def test_eof_is_no(self):
        from mimo_update.cli import confirm

        with patch("builtins.input", side_effect=EOFError):
            assert confirm("? ") is False


class TestUpdateCommand:

    @pytest.mark.unit
    def test_system_update_success(self, tmp_path):
        from mimo_update.cli import main

        with patch("mimo_update.cli.UpdateManager") as manager_cls:
            code = main(["update", "--sys", "--bundle", str(tmp_path / "r.tar.gz"),
                         "--work-dir", str(tmp_path / "work")])

        assert code == 0
        context = manager_cls.call_args.args[0]
        assert context.bundle_archive == tmp_path / "r.tar.gz"
        assert context.work_dir == tmp_path / "work"
        manager_cls.return_value.run_system_update.assert_called_once()

    @pytest.mark.unit
    def test_yes_skips_prompts(self):
        from mimo_update.cli import confirm, main

        with patch("mimo_update.cli.UpdateManager") as manager_cls:
            manager_cls.return_value.run_target_update.return_value = True
            assert main(["update", "--target", "-y"]) == 0

        supplied = manager_cls.call_args.kwargs["confirm"]
        assert supplied is not confirm
        assert supplied("Proceed? ") is True

    @pytest.mark.unit
    def test_cancelled_target_update_exits_zero(self):
        from mimo_update.cli import confirm, main

        with patch("mimo_update.cli.UpdateManager") as manager_cls:
            manager_cls.return_value.run_target_update.return_value = False
            assert main(["update", "--target"]) == 0
        assert manager_cls.call_args.kwargs["confirm"] is confirm

    @pytest.mark.unit
    def test_failure_logs_action_and_rollback_lines(self, caplog):
        from mimo_common.exceptions import ActionFailedError
        from mimo_update.cli import main
        from mimo_update.transaction import RollbackFailure

        error = ActionFailedError(
            "C", OSError("disk full"), [RollbackFailure("B", RuntimeError("gone"))]
        )
        with patch("mimo_update.cli.UpdateManager") as manager_cls:
            manager_cls.return_value.run_system_update.side_effect = error
            with patch("mimo_update.cli.setup_logging"):
                with caplog.at_level(logging.INFO):
                    code = main(["update", "--sys"])

        assert code == 1
        messages = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert "C failed: disk full" in messages
        assert "rollback of B failed: gone" in messages

    @pytest.mark.unit
    def test_other_errors_exit_one(self, caplog):
        from mimo_common.exceptions import PrivilegeError
        from mimo_update.cli import main

        with patch("mimo_update.cli.UpdateManager") as manager_cls:
            manager_cls.return_value.run_system_update.side_effect = PrivilegeError("run_system_update")
            with patch("mimo_update.cli.setup_logging"):
                assert main(["update", "--sys"]) == 1
        assert "requires root privileges" in caplog.text


class TestVerifyCommand:

    @pytest.mark.unit
    def test_verify_ok(self, make_bundle, tmp_path, capsys):
        from mimo_update.cli import main

        archive = make_bundle(files={"a": "a"})
        assert main(["verify", "--bundle", str(archive)]) == 0
        assert f"{archive}: OK" in capsys.readouterr().out

    @pytest.mark.unit
    def test_verify_mismatch(self, make_bundle):
        from mimo_update.cli import main

        archive = make_bundle(files={"a": "a"})
        archive.with_name("resources.sha256").write_text("0" * 64)
        with patch("mimo_update.cli.setup_logging"):
            assert main(["verify", "--bundle", str(archive)]) == 1


class TestInitConfigCommand:

    @pytest.mark.unit
    def test_writes_generated_config(self, tmp_path):
        from mimo_update.cli import main

        (tmp_path / "mimo.service").write_text("[Unit]\n")
        mapping = tmp_path / "mapping.json"
        mapping.write_text(json.dumps({"file_mappings": [
            {"src": str(tmp_path / "mimo.service"), "dst": "/etc/systemd/system/mimo.service"},
        ]}))
        out = tmp_path / "init.json"

        assert main(["init-config", str(mapping), "-o", str(out)]) == 0

        data = json.loads(out.read_text())
        assert data["services"] == ["mimo.service"]
        assert data["files"][0]["type"] == "service"
        assert data["files"][0]["content"] == "[Unit]\n"

    @pytest.mark.unit
    def test_prints_to_stdout(self, tmp_path, capsys):
        from mimo_update.cli import main

        mapping = tmp_path / "mapping.json"
        mapping.write_text(json.dumps({"file_mappings": []}))

        assert main(["init-config", str(mapping)]) == 0
        assert json.loads(capsys.readouterr().out) == {"files": []}
