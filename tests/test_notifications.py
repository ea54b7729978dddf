"""Tests for desktop notifications."""

import subprocess
from unittest.mock import MagicMock, patch

from kickstart.lib.notifications import notify_run_finished, send


class TestSend:
    """notify-send is optional."""

    @patch("kickstart.lib.notifications.shutil.which", return_value=None)
    def test_missing_notify_send(self, mock_which):
        assert send("t", "b") is False

    @patch("kickstart.lib.notifications.subprocess.run")
    @patch("kickstart.lib.notifications.shutil.which", return_value="/usr/bin/notify-send")
    def test_sends(self, mock_which, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        assert send("kickstart: Dark mode", "done", urgency="critical") is True
        assert mock_run.call_args[0][0] == [
            "notify-send", "--urgency", "critical", "--app-name", "kickstart", "kickstart: Dark mode", "done"
        ]

    @patch("kickstart.lib.notifications.subprocess.run")
    @patch("kickstart.lib.notifications.shutil.which", return_value="/usr/bin/notify-send")
    def test_failure_only_warns(self, mock_which, mock_run, caplog):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="notify-send", timeout=5)
        assert send("t", "b") is False
        assert "Desktop notification failed" in caplog.text


class TestNotifyRunFinished:
    """Status mapping."""

    @patch("kickstart.lib.notifications.send", return_value=True)
    def test_failed_run_is_critical(self, mock_send):
        notify_run_finished("Dark mode", "failed", "Plan phase failed")
        mock_send.assert_called_once_with("kickstart: Dark mode", "Run failed\nPlan phase failed", "critical")

    @patch("kickstart.lib.notifications.send", return_value=True)
    def test_incomplete(self, mock_send):
        notify_run_finished("Dark mode", "incomplete")
        assert mock_send.call_args[0][1] == "Plan incomplete, run loop to continue"
