import pytest

from orchestrator.domain.retry import next_poll_delay


@pytest.mark.parametrize(
    "idle_rounds, expected",
    [(0, 2.0), (1, 4.0), (2, 8.0), (4, 32.0), (5, 60.0), (50, 60.0), (-3, 2.0)],
)
def test_idle_backoff_doubles_up_to_cap(idle_rounds, expected):
    assert next_poll_delay(idle_rounds, 2.0, 60.0, jitter=False) == expected


def test_jitter_adds_at_most_ten_percent():
    for rounds in range(8):
        base = next_poll_delay(rounds, jitter=False)
        delay = next_poll_delay(rounds)
        assert base <= delay <= base * 1.1
