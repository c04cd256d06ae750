import pytest

from lumecine.exceptions import UpstreamError
from lumecine.services.retry import RetryPolicy


class Flaky:
    def __init__(self, failures, result="ok", error=UpstreamError):
        self.failures = failures
        self.result = result
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error("boom")
        return self.result


async def test_retries_until_success():
    sleeps = []

    async def sleep(seconds):
        sleeps.append(seconds)

    job = Flaky(failures=3)
    policy = RetryPolicy(attempts=5, base_delay=1, factor=2)
    assert await policy.run(job, sleep=sleep) == "ok"
    assert job.calls == 4
    assert sleeps == [1, 2, 4]


async def test_gives_up_after_last_attempt():
    async def sleep(seconds):
        pass

    job = Flaky(failures=10)
    with pytest.raises(UpstreamError):
        await RetryPolicy(attempts=3).run(job, sleep=sleep)
    assert job.calls == 3


async def test_unexpected_errors_are_not_retried():
    job = Flaky(failures=1, error=KeyError)
    with pytest.raises(KeyError):
        await RetryPolicy(attempts=3, base_delay=0).run(job)
    assert job.calls == 1


def test_delay_is_capped():
    policy = RetryPolicy(base_delay=1, factor=2, max_delay=10)
    assert [policy.delay(n) for n in range(1, 7)] == [1, 2, 4, 8, 10, 10]
