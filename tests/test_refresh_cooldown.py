from assets_tracker.managers.refresh_cooldown import RefreshCooldown


class Clock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_first_refresh_is_allowed(cache):
    cooldown = RefreshCooldown(cache, seconds=1800, clock=Clock(1_000.0))

    assert cooldown.can_refresh("user-1")
    assert cooldown.remaining("user-1") == 0


def test_refresh_blocks_until_window_passes(cache):
    clock = Clock(1_000.0)
    cooldown = RefreshCooldown(cache, seconds=1800, clock=clock)

    cooldown.trigger("user-1")
    assert cooldown.remaining("user-1") == 1800

    clock.now += 600.5
    assert cooldown.remaining("user-1") == 1200
    assert not cooldown.can_refresh("user-1")

    clock.now += 1200
    assert cooldown.can_refresh("user-1")


def test_cooldown_is_per_user(cache):
    cooldown = RefreshCooldown(cache, seconds=1800, clock=Clock(1_000.0))

    cooldown.trigger("user-1")

    assert cooldown.can_refresh("user-2")
