from grid_core.guard import MoveGuard


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_repeat_and_conflicting_requests_are_dropped_while_held() -> None:
    clock = _Clock()
    guard = MoveGuard(hold_seconds=0.2, clock=clock)

    token = guard.acquire((0, "GT", "up"))
    assert token is not None
    assert guard.acquire((0, "GT", "up")) is None
    assert guard.acquire((1, "P", "down")) is None


def test_token_lapses_after_hold_window() -> None:
    clock = _Clock()
    guard = MoveGuard(hold_seconds=0.2, clock=clock)
    guard.acquire((0, "GT", "up"))

    clock.now += 0.19
    assert guard.acquire((0, "GT", "up")) is None
    clock.now += 0.02
    assert guard.held is None
    assert guard.acquire((0, "GT", "up")) is not None


def test_release_only_clears_the_matching_token() -> None:
    clock = _Clock()
    guard = MoveGuard(hold_seconds=0.2, clock=clock)
    first = guard.acquire("a")
    clock.now += 1
    second = guard.acquire("b")

    guard.release(first)
    assert guard.held == second
    guard.release(second)
    assert guard.held is None
