"""
Tests for the logging module.
"""

import time

from deal_intel.logging import (
    PipelineTimer,
    add_context_info,
    get_deal_id,
    get_owner_id,
    get_run_id,
    logging_context,
)


class TestLoggingContext:
    """Test logging context management."""

    def test_logging_context_sets_values(self):
        with logging_context(run_id="run_123", owner_id="7", deal_id="42"):
            assert get_run_id() == "run_123"
            assert get_owner_id() == "7"
            assert get_deal_id() == "42"

    def test_logging_context_restores_values(self):
        with logging_context(run_id="outer"):
            with logging_context(deal_id="42"):
                assert get_run_id() == "outer"
                assert get_deal_id() == "42"

            assert get_deal_id() is None
            assert get_run_id() == "outer"

        assert get_run_id() is None

    def test_processor_adds_context(self):
        with logging_context(run_id="run_1", owner_id="7", deal_id="42"):
            event = add_context_info(None, "info", {"event": "x"})

        assert event["run_id"] == "run_1"
        assert event["owner_id"] == "7"
        assert event["deal_id"] == "42"

    def test_processor_keeps_explicit_deal_id(self):
        with logging_context(deal_id="42"):
            event = add_context_info(None, "info", {"event": "x", "deal_id": 99})

        assert event["deal_id"] == 99

    def test_processor_without_context(self):
        event = add_context_info(None, "info", {"event": "x"})
        assert event == {"event": "x"}


class TestPipelineTimer:
    """Test pipeline timing functionality."""

    def test_timer_records_stages(self):
        timer = PipelineTimer()

        with timer.stage("enrichment"):
            time.sleep(0.01)
        timer.record("prioritization", 12.5)

        assert timer.stages["enrichment"] >= 10
        assert timer.stages["prioritization"] == 12.5

    def test_timer_summary(self):
        timer = PipelineTimer()
        with timer.stage("list_deals"):
            pass

        summary = timer.summary()
        assert "total_ms" in summary
        assert set(summary["stages"]) == {"list_deals"}
