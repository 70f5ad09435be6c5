"""Tests for lucarne.cli.

Tests cover:
- --version and usage output
- --path and stdin input, --name
- --id new / UUID / invalid
- Spawn errors
- Hidden --internal-display / --temp-file handling
"""

import uuid
from unittest.mock import patch

from typer.testing import CliRunner

from lucarne._types import ContentEntry
from lucarne.cli import app
from lucarne.spawner import SpawnError

runner = CliRunner()

# The CLI uses lazy imports like:
#   from lucarne import deliver
# So we patch on the lucarne package itself.

_UUID = "123e4567-e89b-12d3-a456-426614174000"


def _delivered(mock_deliver):
    entry = mock_deliver.call_args[0][0]
    return entry, mock_deliver.call_args[1]


class TestVersionAndUsage:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "lucarne 2.0.0" in result.output

    def test_usage_when_no_input(self):
        with patch("lucarne.cli.is_terminal", return_value=True), patch(
            "lucarne.deliver"
        ) as mock_deliver:
            result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "Usage: lucarne" in result.output
        mock_deliver.assert_not_called()


class TestPathInput:
    def test_delivers_file(self, tmp_path):
        page = tmp_path / "report.html"
        page.write_text("<h1>report</h1>")
        with patch("lucarne.deliver", return_value=True) as mock_deliver:
            result = runner.invoke(app, ["-p", str(page)])
        assert result.exit_code == 0
        entry, kwargs = _delivered(mock_deliver)
        assert entry == ContentEntry(
            name="report.html", path=str(page), content="<h1>report</h1>"
        )
        assert kwargs == {"window_id": None, "from_stdin": False}

    def test_custom_name(self, tmp_path):
        page = tmp_path / "report.html"
        page.write_text("x")
        with patch("lucarne.deliver") as mock_deliver:
            runner.invoke(app, ["--path", str(page), "--name", "Weekly"])
        entry, _ = _delivered(mock_deliver)
        assert entry.name == "Weekly"

    def test_relative_path_made_absolute(self, tmp_path, monkeypatch):
        (tmp_path / "rel.html").write_text("x")
        monkeypatch.chdir(tmp_path)
        with patch("lucarne.deliver") as mock_deliver:
            runner.invoke(app, ["-p", "rel.html"])
        entry, _ = _delivered(mock_deliver)
        assert entry.path == str(tmp_path / "rel.html")

    def test_missing_file(self, tmp_path):
        with patch("lucarne.deliver") as mock_deliver:
            result = runner.invoke(app, ["-p", str(tmp_path / "nope.html")])
        assert result.exit_code == 1
        assert "Error reading file" in result.output
        mock_deliver.assert_not_called()


class TestStdinInput:
    def test_reads_stdin(self):
        with patch("lucarne.cli.is_terminal", return_value=False), patch(
            "lucarne.deliver"
        ) as mock_deliver:
            result = runner.invoke(app, [], input="<p>piped</p>")
        assert result.exit_code == 0
        entry, kwargs = _delivered(mock_deliver)
        assert entry == ContentEntry(name="stdin", path="", content="<p>piped</p>")
        assert kwargs["from_stdin"] is True

    def test_stdin_invalid_utf8_is_replaced(self):
        with patch("lucarne.cli.is_terminal", return_value=False), patch(
            "lucarne.deliver"
        ) as mock_deliver:
            result = runner.invoke(app, [], input=b"<p>caf\xe9</p>")
        assert result.exit_code == 0
        entry, _ = _delivered(mock_deliver)
        assert entry.content == "<p>caf\ufffd</p>"

    def test_stdin_with_name(self):
        with patch("lucarne.cli.is_terminal", return_value=False), patch(
            "lucarne.deliver"
        ) as mock_deliver:
            runner.invoke(app, ["-n", "status"], input="x")
        entry, _ = _delivered(mock_deliver)
        assert entry.name == "status"


class TestWindowId:
    def test_new_prints_uuid(self, tmp_path):
        page = tmp_path / "a.html"
        page.write_text("x")
        with patch("lucarne.deliver") as mock_deliver:
            result = runner.invoke(app, ["-p", str(page), "--id", "new"])
        assert result.exit_code == 0
        printed = result.output.strip().splitlines()[0]
        uuid.UUID(printed)
        _, kwargs = _delivered(mock_deliver)
        assert kwargs["window_id"] == printed

    def test_existing_uuid(self, tmp_path):
        page = tmp_path / "a.html"
        page.write_text("x")
        with patch("lucarne.deliver") as mock_deliver:
            result = runner.invoke(app, ["-p", str(page), "--id", _UUID])
        assert result.exit_code == 0
        assert result.output == ""
        _, kwargs = _delivered(mock_deliver)
        assert kwargs["window_id"] == _UUID

    def test_invalid_id(self, tmp_path):
        page = tmp_path / "a.html"
        page.write_text("x")
        with patch("lucarne.deliver") as mock_deliver:
            result = runner.invoke(app, ["-p", str(page), "--id", "not-a-uuid"])
        assert result.exit_code == 1
        assert "Invalid window ID format" in result.output
        mock_deliver.assert_not_called()


class TestSpawnErrors:
    def test_spawn_error_exits_nonzero(self, tmp_path):
        page = tmp_path / "a.html"
        page.write_text("x")
        with patch("lucarne.deliver", side_effect=SpawnError("boom")):
            result = runner.invoke(app, ["-p", str(page)])
        assert result.exit_code == 1
        assert "Error spawning display" in result.output


class TestInternalDisplay:
    def test_runs_display(self, tmp_path):
        page = tmp_path / "a.html"
        page.write_text("<p>a</p>")
        with patch("lucarne.server.run_display", return_value=0) as mock_run, patch(
            "lucarne.cli._configure_logging"
        ), patch("lucarne.deliver") as mock_deliver:
            result = runner.invoke(
                app, ["--internal-display", "-p", str(page), "-n", "a.html", "--id", "abc"]
            )
        assert result.exit_code == 0
        entry = mock_run.call_args[0][0]
        assert entry.content == "<p>a</p>"
        assert mock_run.call_args[1] == {"window_id": "abc"}
        mock_deliver.assert_not_called()

    def test_exit_code_propagates(self, tmp_path):
        page = tmp_path / "a.html"
        page.write_text("x")
        with patch("lucarne.server.run_display", return_value=1), patch(
            "lucarne.cli._configure_logging"
        ):
            result = runner.invoke(app, ["--internal-display", "-p", str(page)])
        assert result.exit_code == 1

    def test_temp_file_consumed(self, tmp_path):
        temp = tmp_path / "lucarne-xyz.html"
        temp.write_text("<p>piped</p>")
        with patch("lucarne.server.run_display", return_value=0) as mock_run, patch(
            "lucarne.cli._configure_logging"
        ):
            runner.invoke(
                app,
                ["--internal-display", "-p", str(temp), "--temp-file", "-n", "stdin"],
            )
        assert not temp.exists()
        entry = mock_run.call_args[0][0]
        assert entry == ContentEntry(name="stdin", path="", content="<p>piped</p>")
