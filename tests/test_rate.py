from scraperlib.rate import RateLimiter


def make_clock():
    timeline = [0.0]
    sleeps = []

    def now():
        return timeline[0]

    def sleep(s):
        sleeps.append(s)
        timeline[0] += s

    return now, sleep, sleeps


def test_rate_limiter_waits_per_host():
    now, sleep, sleeps = make_clock()
    rl = RateLimiter(0.5, now=now, sleep=sleep)
    assert rl.wait_turn("https://a.com/x") == 0.0
    assert sleeps == []  # first call no wait
    rl.wait_turn("https://a.com/y")
    assert sleeps and 0.49 <= sleeps[-1] <= 0.5
    # other hosts are not delayed
    assert rl.wait_turn("https://b.com/") == 0.0


def test_rate_limiter_disabled():
    now, sleep, sleeps = make_clock()
    rl = RateLimiter(0.0, now=now, sleep=sleep)
    assert not rl.enabled
    for _ in range(3):
        rl.wait_turn("https://a.com/")
    assert sleeps == []
