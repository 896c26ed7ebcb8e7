"""Tests for the CLI output helpers."""

from __future__ import annotations

import json

import pytest

from outbox_service.cli.utils import abort, section, status

pytestmark = pytest.mark.unit


class TestSection:
    """Tests for section()."""

    def test_aligns_keys_under_title(self, capsys):
        section("Outbox", {"PENDING": 2, "total": 3})

        lines = capsys.readouterr().out.splitlines()
        assert lines[1] == "Outbox"
        assert lines[2] == "  PENDING  2"
        assert lines[3] == "  total    3"

    def test_json_prints_single_object(self, capsys):
        section("Outbox publisher", {"mode": "disabled", "reason": "off"}, as_json=True)

        out = capsys.readouterr().out
        assert json.loads(out) == {"mode": "disabled", "reason": "off"}
        assert "Outbox publisher" not in out

    def test_empty_rows_print_only_title(self, capsys):
        section("Publish cycle", {})

        assert capsys.readouterr().out.strip() == "Publish cycle"


class TestAbortAndStatus:
    """Tests for abort() and status()."""

    @pytest.mark.parametrize("disabled", [False, True])
    def test_abort_exits_with_one_on_stderr(self, capsys, disabled):
        with pytest.raises(SystemExit) as exc_info:
            abort("Could not connect to Kafka: refused", disabled=disabled)

        assert exc_info.value.code == 1
        captured = capsys.readouterr()
        assert "Could not connect to Kafka: refused" in captured.err
        assert captured.out == ""

    def test_status_goes_to_stdout(self, capsys):
        status("Shutting down publisher...")

        assert capsys.readouterr().out.strip() == "> Shutting down publisher..."
