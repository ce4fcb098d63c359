"""Tests for RunSummary and SummaryRecorder."""

from reconciliation.summary import RunSummary, SummaryRecorder


def test_fresh_recorder_snapshot():
    assert SummaryRecorder().snapshot() == {
        "last_summary": None,
        "in_progress": False,
        "started_at": None,
        "next_run": None,
        "next_full_refresh": None,
    }


def test_start_then_finish():
    recorder = SummaryRecorder()
    recorder.mark_start(100.0)
    assert recorder.in_progress is True
    assert recorder.snapshot()["started_at"] == 100.0

    summary = RunSummary(run_tag="t", start="t", success=True, entities=[{"entity": "customers"}])
    recorder.finish(summary)

    assert recorder.in_progress is False
    assert recorder.last_summary is summary
    assert recorder.snapshot()["last_summary"]["entities"] == [{"entity": "customers"}]


def test_finish_counts_runs_and_failures():
    recorder = SummaryRecorder()
    assert recorder.counters() == {"total_runs": 0, "total_failures": 0, "last_duration_ms": 0}

    recorder.finish(RunSummary(run_tag="a", start="t", success=False, duration_ms=70))
    recorder.finish(RunSummary(run_tag="b", start="t", success=True, duration_ms=30))

    assert recorder.counters() == {"total_runs": 2, "total_failures": 1, "last_duration_ms": 30}


def test_schedule_times():
    recorder = SummaryRecorder()
    recorder.set_next_run(200.0)
    recorder.set_next_full_refresh(300.0)
    snap = recorder.snapshot()
    assert snap["next_run"] == 200.0
    assert snap["next_full_refresh"] == 300.0


def test_summary_to_dict_defaults():
    data = RunSummary(run_tag="t", start="s").to_dict()
    assert data == {
        "run_tag": "t",
        "start": "s",
        "end": None,
        "duration_ms": 0,
        "success": False,
        "error": None,
        "full_refresh": False,
        "entities": [],
    }
