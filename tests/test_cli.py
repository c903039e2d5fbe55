"""
Tests for the activity-stream CLI.
"""

import json

from typer.testing import CliRunner

from activity_stream.components.events.types import StreamEvent
from activity_stream.main import _print_event, app

runner = CliRunner()


class TestConfigCommand:
    def test_lists_stream_settings(self):
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "stream_max_delay" in result.output
        assert "stream_full_refresh_threshold" in result.output


class TestPrintEvent:
    def test_json_output_is_wire_shape(self, capsys):
        event = StreamEvent(
            type="work_changed",
            timestamp="2026-01-14T00:00:00Z",
            data={"id": "w1"},
        )

        _print_event(event, as_json=True)
        line = capsys.readouterr().out.strip()

        assert json.loads(line)["type"] == "work_changed"
        assert json.loads(line)["data"] == {"id": "w1"}
