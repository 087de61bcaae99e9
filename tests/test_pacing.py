import json
import random

from pacing import Pacer, RandomJitter
from run_metrics import RunMetrics


def test_random_jitter_stays_in_range():
    jitter = RandomJitter(random.Random(42))
    values = [jitter.duration(1.0, 3.0) for _ in range(200)]
    assert all(1.0 <= v < 3.0 for v in values)


def test_random_jitter_degenerate_range():
    assert RandomJitter().duration(5.0, 5.0) == 5.0


def test_pause_returns_the_slept_delay(sleeper):
    pacer = Pacer(RandomJitter(random.Random(7)), sleeper=sleeper)
    delay = pacer.pause(5.0, 8.0, reason="identity switch")
    assert sleeper.calls == [delay]
    assert 5.0 <= delay < 8.0


def test_wait_skips_non_positive(pacer, sleeper):
    pacer.wait(0)
    pacer.wait(-1)
    assert sleeper.calls == []


def test_run_metrics_json(tmp_path):
    metrics = RunMetrics(mode="search")
    metrics.inc("pages_fetched", 3)
    metrics.record_event("branch_failed", board="indeed", error=None)
    metrics.finish()

    path = metrics.write_json(template=str(tmp_path / "out" / "metrics_{timestamp}.json"))

    payload = json.loads(path.read_text())
    assert payload["mode"] == "search"
    assert payload["counters"] == {"pages_fetched": 3}
    assert payload["summary"]["pages_fetched"] == 3
    assert payload["summary"]["applications_submitted"] == 0
    assert payload["events"][0]["kind"] == "branch_failed"
    assert "error" not in payload["events"][0]
    assert "{timestamp}" not in path.name
