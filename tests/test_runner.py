"""
Tests for CommandRunner. subprocess is always mocked.
"""

from unittest.mock import MagicMock, patch

import pytest


class TestCommandRunner:

    @pytest.mark.unit
    def test_run_captures_output(self, mock_subprocess):
        from mimo_update.runner import CommandRunner

        mock_subprocess.return_value = MagicMock(returncode=0, stdout="ok\n", stderr="")
        result = CommandRunner().run(["systemctl", "daemon-reload"])

        assert result.stdout == "ok\n"
        args, kwargs = mock_subprocess.call_args
        assert args[0] == ["systemctl", "daemon-reload"]
        assert kwargs["capture_output"] is True
        assert kwargs["text"] is True

    @pytest.mark.unit
    def test_run_raises_on_failure(self, mock_subprocess):
        from mimo_common.exceptions import CommandError
        from mimo_update.runner import CommandRunner

        mock_subprocess.return_value = MagicMock(returncode=1, stdout="", stderr="no such unit\n")
        with pytest.raises(CommandError) as exc_info:
            CommandRunner().run(["systemctl", "enable", "x.service"])

        assert exc_info.value.returncode == 1
        assert exc_info.value.output == "no such unit"
        assert exc_info.value.command == "systemctl enable x.service"

    @pytest.mark.unit
    def test_run_without_check(self, mock_subprocess):
        from mimo_update.runner import CommandRunner

        mock_subprocess.return_value = MagicMock(returncode=3, stdout="", stderr="")
        assert CommandRunner().run(["false"], check=False).returncode == 3

    @pytest.mark.unit
    def test_missing_binary(self, mock_subprocess):
        from mimo_common.exceptions import CommandError
        from mimo_update.runner import CommandRunner

        mock_subprocess.side_effect = FileNotFoundError("update-grub")
        with pytest.raises(CommandError) as exc_info:
            CommandRunner().run(["update-grub"])
        assert exc_info.value.returncode == 127

    @pytest.mark.unit
    def test_succeeds(self, mock_subprocess):
        from mimo_update.runner import CommandRunner

        runner = CommandRunner()
        mock_subprocess.return_value = MagicMock(returncode=0, stdout="", stderr="")
        assert runner.succeeds(["true"]) is True
        mock_subprocess.return_value = MagicMock(returncode=1, stdout="", stderr="")
        assert runner.succeeds(["false"]) is False
        mock_subprocess.side_effect = FileNotFoundError("x")
        assert runner.succeeds(["x"]) is False

    @pytest.mark.unit
    def test_stream_returns_exit_code(self, mock_subprocess):
        from mimo_update.runner import CommandRunner

        mock_subprocess.return_value = MagicMock(returncode=100)
        assert CommandRunner().stream(["apt", "update"]) == 100
        args, kwargs = mock_subprocess.call_args
        assert "capture_output" not in kwargs

    @pytest.mark.unit
    def test_spawn_detaches(self):
        from mimo_update.runner import CommandRunner

        with patch("subprocess.Popen") as mock_popen:
            mock_popen.return_value = MagicMock(pid=777)
            assert CommandRunner().spawn(["/opt/spdk_tgt", "-c", "cfg.json"]) == 777
        assert mock_popen.call_args.kwargs["start_new_session"] is True
