import asyncio

import pytest

from giftstrack.services.request_guard import CancelableRequest, Debouncer, MountGuard


async def test_mount_guard_drops_results_after_teardown():
    guard = MountGuard()
    assert await guard.run(asyncio.sleep(0, result="ok")) == "ok"

    guard.teardown()
    assert not guard.is_active
    assert await guard.run(asyncio.sleep(0, result="late")) is None


async def test_last_started_request_wins_regardless_of_resolution_order():
    request = CancelableRequest()
    gate_a, gate_b = asyncio.Event(), asyncio.Event()

    async def search(term, gate):
        await gate.wait()
        return term

    first = asyncio.create_task(request.execute(lambda: search("ab", gate_a)))
    await asyncio.sleep(0)
    second = asyncio.create_task(request.execute(lambda: search("abc", gate_b)))
    await asyncio.sleep(0)

    gate_b.set()
    gate_a.set()

    assert await second == "abc"
    assert await first is None
    assert request.generation == 2


async def test_cancel_resolves_pending_to_none():
    request = CancelableRequest()
    pending = asyncio.create_task(request.execute(lambda: asyncio.sleep(1, result="x")))
    await asyncio.sleep(0)

    request.cancel()

    assert await pending is None
    assert request.is_canceled()


async def test_execute_after_cancel_runs_normally():
    request = CancelableRequest()
    request.cancel()
    assert await request.execute(lambda: asyncio.sleep(0, result="y")) == "y"
    assert not request.is_canceled()


async def test_errors_of_current_request_propagate():
    request = CancelableRequest()

    async def broken():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await request.execute(broken)


async def test_errors_of_superseded_request_are_dropped():
    request = CancelableRequest()
    gate = asyncio.Event()

    async def broken():
        await gate.wait()
        raise RuntimeError("boom")

    async def slow():
        await asyncio.sleep(0.01)
        return "fresh"

    stale = asyncio.create_task(request.execute(broken))
    await asyncio.sleep(0)
    fresh = asyncio.create_task(request.execute(slow))
    gate.set()

    assert await stale is None
    assert await fresh == "fresh"


async def test_teardown_rejects_new_requests():
    request = CancelableRequest()
    request.teardown()
    calls = []

    async def fetch():
        calls.append(1)

    assert await request.execute(fetch) is None
    assert calls == []


async def test_debouncer_fires_only_last_call():
    seen = []
    debouncer = Debouncer(seen.append, delay=0.02)

    debouncer.call("a")
    debouncer.call("ab")
    debouncer.call("abc")
    assert debouncer.is_pending

    await asyncio.sleep(0.06)

    assert seen == ["abc"]
    assert not debouncer.is_pending


async def test_debouncer_cancel():
    seen = []
    debouncer = Debouncer(seen.append, delay=0.01)
    debouncer.call("a")
    debouncer.cancel()
    await asyncio.sleep(0.03)
    assert seen == []


async def test_debouncer_runs_coroutine_callbacks():
    done = asyncio.Event()

    async def search(term):
        done.set()

    debouncer = Debouncer(search, delay=0)
    debouncer.call("gift")
    await asyncio.wait_for(done.wait(), timeout=1)
