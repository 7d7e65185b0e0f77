from bankconn.utils.backoff import compute_backoff_seconds, should_retry


def test_backoff_growth_and_cap():
    first = compute_backoff_seconds(1, base=1, factor=2, max_seconds=10, jitter_pct=0.0)
    second = compute_backoff_seconds(2, base=1, factor=2, max_seconds=10, jitter_pct=0.0)
    third = compute_backoff_seconds(3, base=1, factor=2, max_seconds=10, jitter_pct=0.0)
    assert first == 1
    assert second == 2
    assert third == 4
    capped = compute_backoff_seconds(10, base=1, factor=2, max_seconds=5, jitter_pct=0.0)
    assert capped == 5


def test_backoff_jitter_stays_within_band():
    for _ in range(50):
        delay = compute_backoff_seconds(3, base=10, factor=2, max_seconds=1000, jitter_pct=0.1)
        assert 36 <= delay <= 44


def test_should_retry_respects_ceiling():
    assert should_retry(1, max_attempts=3)
    assert should_retry(2, max_attempts=3)
    assert not should_retry(3, max_attempts=3)
