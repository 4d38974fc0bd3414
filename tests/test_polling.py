import pytest

from campaign_engine.services.polling import PollPolicy, poll_until


def test_poll_until_returns_on_first_ready_value():
    values = iter(["IN_PROGRESS", "IN_PROGRESS", "FINISHED", "never"])
    sleeps = []

    outcome = poll_until(
        lambda: next(values),
        lambda value: value == "FINISHED",
        PollPolicy(max_attempts=5, delay_seconds=2.0),
        sleep=sleeps.append,
    )

    assert outcome.satisfied is True
    assert outcome.attempts == 3
    assert outcome.last == "FINISHED"
    assert sleeps == [2.0, 2.0, 2.0]


def test_poll_until_gives_up_after_max_attempts():
    sleeps = []

    outcome = poll_until(
        lambda: None,
        lambda value: value == "FINISHED",
        PollPolicy(max_attempts=3, delay_seconds=1.0, backoff=2.0, initial_delay=False),
        sleep=sleeps.append,
    )

    assert outcome.satisfied is False
    assert outcome.attempts == 3
    assert outcome.last is None
    assert sleeps == [2.0, 4.0]


def test_poll_until_propagates_fetch_errors():
    def fetch():
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        poll_until(fetch, lambda value: True, PollPolicy(max_attempts=3, delay_seconds=0), sleep=lambda _: None)
