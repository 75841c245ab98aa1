"""Tests del CLI de consulta."""

import pytest

from driving_ingest.cli import build_parser, main, render_query
from driving_ingest.storage import AlertRecord


@pytest.fixture
def populated(store):
    store.insert_alert(AlertRecord.crash("d1", 1000, 8.5))
    store.insert_alert(AlertRecord.warning("d1", "harsh_braking", 1100, 0.1, -4.5))
    store.insert_batch("d1", store.next_batch_id(), 0, 100, [[1, 2, 3], [4, 5, 6]])
    return store


class TestRenderQuery:

    def test_stats(self, populated):
        lines = render_query(populated, "stats")

        assert "    Total:    2" in lines
        assert "    Crashes:  1" in lines
        assert "    Readings: 2" in lines

    def test_crashes_only(self, populated):
        lines = render_query(populated, "crashes")

        assert any("magnitude: 8.5" in line for line in lines)
        assert not any("harsh_braking" in line for line in lines)

    def test_warnings_only(self, populated):
        lines = render_query(populated, "warnings")
        assert any("harsh_braking - accel_y: -4.5" in line for line in lines)

    def test_readings_table(self, populated):
        lines = render_query(populated, "readings")
        assert lines[-1] == "         1 |     1 |   4.0000 |   5.0000 |   6.0000"

    def test_batches(self, populated):
        assert "Batch #1 (d1): 2 samples @ 100Hz" in render_query(populated, "batches")

    def test_empty_database(self, store):
        assert "  No alerts recorded yet." in render_query(store, "alerts")

    def test_unknown_command(self, store):
        with pytest.raises(ValueError):
            render_query(store, "nope")


class TestMain:

    def test_query_stats(self, populated, settings, capsys):
        assert main(["query", "stats", "--db", settings.db_path]) == 0

        out = capsys.readouterr().out
        assert "Driving Safety Monitor - Database Query" in out
        assert "Warnings: 1" in out

    def test_default_command_is_stats(self):
        args = build_parser().parse_args(["query"])
        assert args.command == "stats"

    def test_invalid_command_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["query", "nope"])
