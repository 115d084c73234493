import asyncio
import threading
import time

import numpy as np
import pytest

from tonecurve.domain.errors import RenderCancelledError, RenderError
from tonecurve.features.curves.models import ToneCurveSet
from tonecurve.services.rendering.coordinator import RenderCoordinator, RenderState
from tonecurve.services.rendering.renderers import LutRenderer

CURVES = ToneCurveSet.identity()


def image(request_id: int) -> np.ndarray:
    return np.full((2, 2, 3), float(request_id), dtype=np.float32)


def request_id(img: np.ndarray) -> int:
    return int(img[0, 0, 0])


class GatedRenderer:
    """
    Async renderer that blocks each request until the test releases it.
    """

    name = "gated"

    def __init__(self):
        self.started: list[int] = []
        self.finished: list[int] = []
        self.cancelled: list[int] = []
        self._gates: dict[int, asyncio.Event] = {}
        self._starts: dict[int, asyncio.Event] = {}

    def _gate(self, rid):
        return self._gates.setdefault(rid, asyncio.Event())

    def _start(self, rid):
        return self._starts.setdefault(rid, asyncio.Event())

    def release(self, rid):
        self._gate(rid).set()

    async def wait_started(self, rid):
        await asyncio.wait_for(self._start(rid).wait(), timeout=5)

    async def render(self, img, curve_set):
        rid = request_id(img)
        self.started.append(rid)
        self._start(rid).set()
        try:
            await self._gate(rid).wait()
        except asyncio.CancelledError:
            self.cancelled.append(rid)
            raise
        self.finished.append(rid)
        return img.copy()


class ThreadedRenderer:
    """
    Synchronous renderer; once started it runs to completion whatever the coordinator decides.
    """

    name = "threaded"

    def __init__(self):
        self.started: list[int] = []
        self.finished: list[int] = []
        self._gates: dict[int, threading.Event] = {}
        self._lock = threading.Lock()

    def _gate(self, rid):
        with self._lock:
            return self._gates.setdefault(rid, threading.Event())

    def release(self, rid):
        self._gate(rid).set()

    async def wait_started(self, rid):
        deadline = time.monotonic() + 5
        while rid not in self.started:
            assert time.monotonic() < deadline, f"request {rid} never started"
            await asyncio.sleep(0.005)

    async def wait_finished(self, rid):
        deadline = time.monotonic() + 5
        while rid not in self.finished:
            assert time.monotonic() < deadline, f"request {rid} never finished"
            await asyncio.sleep(0.005)

    def render(self, img, curve_set):
        rid = request_id(img)
        self.started.append(rid)
        self._gate(rid).wait(timeout=5)
        self.finished.append(rid)
        return img.copy()


class FailingRenderer:
    name = "failing"

    def __init__(self, error):
        self.error = error
        self.calls = 0

    async def render(self, img, curve_set):
        self.calls += 1
        if self.calls == 1:
            raise self.error
        return img.copy()


def test_only_latest_of_rapid_requests_is_delivered():
    async def scenario():
        renderer = GatedRenderer()
        async with RenderCoordinator(renderer) as coordinator:
            tasks = [asyncio.create_task(coordinator.render(image(i), CURVES)) for i in (1, 2, 3)]
            await renderer.wait_started(3)
            renderer.release(3)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            return renderer, coordinator, results

    renderer, coordinator, results = asyncio.run(scenario())

    assert isinstance(results[0], RenderCancelledError)
    assert isinstance(results[1], RenderCancelledError)
    assert request_id(results[2]) == 3
    assert coordinator.serial == 3
    delivered = [r for r in results if isinstance(r, np.ndarray)]
    assert len(delivered) == 1


def test_older_result_finishing_after_newer_issue_is_discarded():
    async def scenario():
        renderer = ThreadedRenderer()
        async with RenderCoordinator(renderer) as coordinator:
            r2 = asyncio.create_task(coordinator.render(image(2), CURVES))
            await renderer.wait_started(2)

            r3 = asyncio.create_task(coordinator.render(image(3), CURVES))
            await renderer.wait_started(3)

            # Request 2 finishes while request 3 is still rendering
            renderer.release(2)
            await renderer.wait_finished(2)
            assert not r3.done()

            renderer.release(3)
            return renderer, await asyncio.gather(r2, r3, return_exceptions=True)

    renderer, (out2, out3) = asyncio.run(scenario())

    assert 2 in renderer.finished
    assert isinstance(out2, RenderCancelledError)
    assert request_id(out3) == 3


def test_completion_racing_with_newer_issue_is_discarded():
    async def scenario():
        renderer = GatedRenderer()
        async with RenderCoordinator(renderer) as coordinator:
            r2 = asyncio.create_task(coordinator.render(image(2), CURVES))
            await renderer.wait_started(2)

            # Work 2 completes in the same loop turn that request 3 is issued
            renderer.release(2)
            r3 = asyncio.create_task(coordinator.render(image(3), CURVES))
            await renderer.wait_started(3)
            renderer.release(3)
            return renderer, await asyncio.gather(r2, r3, return_exceptions=True)

    renderer, (out2, out3) = asyncio.run(scenario())

    assert renderer.finished[0] == 2
    assert isinstance(out2, RenderCancelledError)
    assert request_id(out3) == 3


def test_superseded_work_is_cancelled():
    async def scenario():
        renderer = GatedRenderer()
        async with RenderCoordinator(renderer) as coordinator:
            r1 = asyncio.create_task(coordinator.render(image(1), CURVES))
            await renderer.wait_started(1)
            r2 = asyncio.create_task(coordinator.render(image(2), CURVES))
            await renderer.wait_started(2)
            renderer.release(2)
            return renderer, await asyncio.gather(r1, r2, return_exceptions=True)

    renderer, (out1, out2) = asyncio.run(scenario())
    assert renderer.cancelled == [1]
    assert isinstance(out1, RenderCancelledError)
    assert request_id(out2) == 2


def test_cancel_in_flight():
    async def scenario():
        renderer = GatedRenderer()
        coordinator = RenderCoordinator(renderer)
        # Nothing to cancel yet
        coordinator.cancel_in_flight()

        r1 = asyncio.create_task(coordinator.render(image(1), CURVES))
        await renderer.wait_started(1)
        assert coordinator.state == RenderState.RENDERING

        coordinator.cancel_in_flight()
        coordinator.cancel_in_flight()
        with pytest.raises(RenderCancelledError):
            await r1
        state_after_cancel = coordinator.state

        # The coordinator keeps working afterwards
        r2 = asyncio.create_task(coordinator.render(image(2), CURVES))
        await renderer.wait_started(2)
        renderer.release(2)
        out = await r2
        await coordinator.aclose()
        return renderer, state_after_cancel, coordinator.state, out

    renderer, state_after_cancel, final_state, out = asyncio.run(scenario())
    assert state_after_cancel == RenderState.SUPERSEDED
    assert final_state == RenderState.IDLE
    assert renderer.cancelled == [1]
    assert request_id(out) == 2


def test_renderer_failure_is_isolated():
    async def scenario():
        coordinator = RenderCoordinator(FailingRenderer(ValueError("device lost")))
        with pytest.raises(RenderError) as exc:
            await coordinator.render(image(1), CURVES)
        out = await coordinator.render(image(2), CURVES)
        await coordinator.aclose()
        return exc.value, out

    error, out = asyncio.run(scenario())
    assert isinstance(error.__cause__, ValueError)
    assert "device lost" in str(error)
    assert request_id(out) == 2


def test_render_error_passes_through_unwrapped():
    async def scenario():
        original = RenderError("extent mismatch")
        coordinator = RenderCoordinator(FailingRenderer(original))
        with pytest.raises(RenderError) as exc:
            await coordinator.render(image(1), CURVES)
        await coordinator.aclose()
        return original, exc.value

    original, raised = asyncio.run(scenario())
    assert raised is original


def test_cancellation_is_not_a_render_error():
    assert not issubclass(RenderCancelledError, RenderError)
    assert not issubclass(RenderCancelledError, asyncio.CancelledError)


def test_sync_renderer_runs_off_loop():
    async def scenario():
        async with RenderCoordinator(LutRenderer(64), name="full") as coordinator:
            img = np.random.default_rng(1).random((4, 4, 3)).astype(np.float32)
            out = await coordinator.render(img, CURVES)
            return coordinator, img, out

    coordinator, img, out = asyncio.run(scenario())
    assert out.shape == img.shape
    assert coordinator.backend_name == "LUT texture"
    assert coordinator.status_text() == "Rendered using LUT texture."


def test_abandoned_caller_cancels_work():
    async def scenario():
        renderer = GatedRenderer()
        async with RenderCoordinator(renderer) as coordinator:
            r1 = asyncio.create_task(coordinator.render(image(1), CURVES))
            await renderer.wait_started(1)
            r1.cancel()
            with pytest.raises(asyncio.CancelledError):
                await r1
            for _ in range(10):
                await asyncio.sleep(0)
            return renderer, coordinator.is_rendering

    renderer, rendering = asyncio.run(scenario())
    assert renderer.cancelled == [1]
    assert rendering is False


def test_close_cancels_outstanding_and_rejects_new():
    async def scenario():
        renderer = GatedRenderer()
        coordinator = RenderCoordinator(renderer)
        r1 = asyncio.create_task(coordinator.render(image(1), CURVES))
        await renderer.wait_started(1)
        await coordinator.aclose()
        with pytest.raises(RenderCancelledError):
            await r1
        with pytest.raises(RenderCancelledError):
            await coordinator.render(image(2), CURVES)
        # Closing twice is harmless
        await coordinator.aclose()

    asyncio.run(scenario())


def test_independent_coordinators_do_not_supersede_each_other():
    async def scenario():
        renderer_a, renderer_b = GatedRenderer(), GatedRenderer()
        async with RenderCoordinator(renderer_a, "preview") as a, RenderCoordinator(renderer_b, "full") as b:
            ra = asyncio.create_task(a.render(image(1), CURVES))
            rb = asyncio.create_task(b.render(image(2), CURVES))
            await renderer_a.wait_started(1)
            await renderer_b.wait_started(2)
            renderer_a.release(1)
            renderer_b.release(2)
            return await asyncio.gather(ra, rb)

    out_a, out_b = asyncio.run(scenario())
    assert request_id(out_a) == 1
    assert request_id(out_b) == 2
