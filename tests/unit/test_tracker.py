"""
Unit tests for per-resource sync tracking
"""

from ingestion.tracker import ResourceSyncTracker, summarize_errors
from models.sync_run import SyncRun


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestResourceSyncTracker:

    def test_counts_and_metrics(self):
        run = SyncRun()
        clock = FakeClock()
        tracker = ResourceSyncTracker(run, "units", clock=clock)

        tracker.record_created()
        tracker.record_created()
        tracker.record_updated()
        tracker.record_skipped("Missing property reference")
        tracker.record_error("Invalid record: boom", {"external_id": "5"})
        clock.now += 1.5

        metrics = tracker.finish()

        assert metrics == {"created": 2, "updated": 1, "skipped": 1, "errors": 1, "duration_ms": 1500}
        assert tracker.processed_count == 5
        assert tracker.has_errors is True
        assert tracker.skip_reasons == ["Missing property reference"]
        assert run.get_resource_metrics()["units"] == metrics
        assert run.get_resource_errors("units")[0]["message"] == "Invalid record: boom"

    def test_finish_replaces_stored_metrics(self):
        run = SyncRun()
        clock = FakeClock()
        tracker = ResourceSyncTracker(run, "vendors", clock=clock)

        tracker.record_created()
        tracker.finish()
        tracker.record_created()
        clock.now += 0.25
        tracker.finish()

        stored = run.get_resource_metrics()["vendors"]
        assert stored["created"] == 2
        assert stored["duration_ms"] == 250

    def test_no_errors(self):
        tracker = ResourceSyncTracker(SyncRun(), "properties")
        assert tracker.has_errors is False
        assert tracker.processed_count == 0


class TestSummarizeErrors:

    def test_short_list_is_kept(self):
        assert summarize_errors(["a", "b"]) == "a\nb"

    def test_long_list_is_collapsed(self):
        messages = [f"error {i}" for i in range(15)]
        summary = summarize_errors(messages)
        lines = summary.split("\n")

        assert len(lines) == 11
        assert lines[0] == "error 0"
        assert lines[9] == "error 9"
        assert lines[-1] == "... and 5 more errors"
