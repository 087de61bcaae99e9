"""
Application loop tests - quota, failure handling, pacing, dry run
"""

from datetime import datetime

from applier import ApplicationLoop, start_of_today
from conftest import FakeBoard, FakeSession, FixedJitter, make_listing
from pacing import Pacer
from run_metrics import RunMetrics


def _candidates(store, count, source="fake"):
    listings = [make_listing(str(i), 0, source=source) for i in range(count)]
    store.upsert_many(listings)
    return listings


def _loop(board, store, pacer, **kwargs):
    return ApplicationLoop({board.name: board}, FakeSession(), store, pacer, **kwargs)


def test_start_of_today():
    assert start_of_today(datetime(2024, 3, 9, 17, 45, 12, 999)) == datetime(2024, 3, 9)


def test_quota_counts_earlier_submissions(store, pacer):
    board = FakeBoard({})
    candidates = _candidates(store, 10)

    submitted = _loop(board, store, pacer).run(candidates, daily_quota=3, already_submitted_today=2)

    assert submitted == 1
    assert board.applied == ["0"]
    assert store.stats().applied == 1


def test_zero_quota_attempts_nothing(store, pacer, sleeper):
    board = FakeBoard({})
    metrics = RunMetrics(mode="apply")

    submitted = _loop(board, store, pacer, metrics=metrics).run(_candidates(store, 3), daily_quota=0)

    assert submitted == 0
    assert board.applied == []
    assert sleeper.calls == []
    assert metrics.get("quota_stops") == 1


def test_failed_application_does_not_stop_the_loop(store, pacer):
    board = FakeBoard({}, apply_results={"1": False})
    metrics = RunMetrics(mode="apply")

    submitted = _loop(board, store, pacer, metrics=metrics).run(_candidates(store, 3), daily_quota=10)

    assert submitted == 2
    assert board.applied == ["0", "1", "2"]
    failed = store.outcomes_for("1")
    assert len(failed) == 1 and failed[0].success is False
    assert failed[0].error == "Board did not confirm submission"
    assert store.find_by_id("1").applied is False
    assert store.find_by_id("2").applied is True
    assert metrics.get("applications_failed") == 1
    assert metrics.get("applications_submitted") == 2


def test_failures_do_not_use_up_quota(store, pacer):
    board = FakeBoard({}, apply_results={"0": False, "1": False})

    submitted = _loop(board, store, pacer).run(_candidates(store, 5), daily_quota=2)

    assert submitted == 2
    assert board.applied == ["0", "1", "2", "3"]


def test_detail_error_is_recorded_as_failure(store, pacer):
    board = FakeBoard({}, detail_errors={"0"})

    submitted = _loop(board, store, pacer).run(_candidates(store, 2), daily_quota=5)

    assert submitted == 1
    assert board.applied == ["1"]
    outcome = store.outcomes_for("0")[0]
    assert outcome.success is False
    assert "jobDescriptionText" in outcome.error


def test_pause_after_every_attempt(store, sleeper):
    board = FakeBoard({}, apply_results={"1": False})
    pacer = Pacer(FixedJitter(0.5), sleeper=sleeper)

    _loop(board, store, pacer).run(_candidates(store, 3), daily_quota=10)

    assert sleeper.calls == [7.5, 7.5, 7.5]


def test_already_applied_candidates_are_skipped(store, pacer):
    board = FakeBoard({})
    candidates = _candidates(store, 3)
    candidates[0] = candidates[0].model_copy(update={"applied": True})

    submitted = _loop(board, store, pacer).run(candidates, daily_quota=10)

    assert submitted == 2
    assert board.applied == ["1", "2"]


def test_dry_run_submits_nothing(store, pacer):
    board = FakeBoard({})

    simulated = _loop(board, store, pacer, dry_run=True).run(_candidates(store, 5), daily_quota=3)

    assert simulated == 3
    assert board.applied == []
    assert board.detailed == ["0", "1", "2"]
    assert store.stats().applied == 0
    assert store.outcomes_for("0") == []


def test_unknown_source_is_a_failed_outcome(store, pacer):
    board = FakeBoard({})
    candidates = _candidates(store, 1, source="monster")

    submitted = _loop(board, store, pacer).run(candidates, daily_quota=5)

    assert submitted == 0
    outcome = store.outcomes_for("0")[0]
    assert outcome.success is False
    assert "monster" in outcome.error


def test_successful_outcome_feeds_the_daily_count(store, pacer):
    board = FakeBoard({})

    _loop(board, store, pacer).run(_candidates(store, 2), daily_quota=5)

    assert store.count_successful_since(start_of_today()) == 2


def test_success_marks_only_the_submitted_posting(store, pacer):
    board = FakeBoard({}, apply_results={"https://jobs.example/b": False})
    candidates = [
        make_listing("", 0, url="https://jobs.example/a", source="fake"),
        make_listing("", 0, url="https://jobs.example/b", source="fake"),
    ]
    store.upsert_many(candidates)

    submitted = _loop(board, store, pacer).run(candidates, daily_quota=1)

    assert submitted == 1
    assert store.find_by_url("https://jobs.example/a").applied is True
    assert store.find_by_url("https://jobs.example/b").applied is False
    assert [l.url for l in store.find_unapplied()] == ["https://jobs.example/b"]
