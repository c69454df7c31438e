import asyncio

import pytest

from samcut.core.contracts import DecodeState, Point, PointLabel
from samcut.core.errors import DecodeFailure, DecodeRefused
from samcut.interaction.point_store import PointStore
from samcut.segmentation.decode_coordinator import DecodeCoordinator
from samcut.segmentation.embedding_cache import EmbeddingCache


async def make_coordinator(backend, image, with_embedding=True):
    points = PointStore()
    cache = EmbeddingCache(backend)
    if with_embedding:
        await cache.compute_embedding(image)
    results = []
    coordinator = DecodeCoordinator(backend, points, cache, results.append)
    return coordinator, points, cache, results


def test_single_request_decodes_current_points(backend, image):
    async def scenario():
        coordinator, points, _, results = await make_coordinator(backend, image)
        points.add_point(Point(0.5, 0.5))
        ran = await coordinator.request_decode()
        return coordinator, ran, results

    coordinator, ran, results = asyncio.run(scenario())

    assert ran
    assert coordinator.state is DecodeState.IDLE
    assert len(results) == 1
    assert results[0].index == 1
    assert backend.decode_calls == [(Point(0.5, 0.5),)]


def test_burst_collapses_into_one_rerun_with_latest_points(backend, image):
    async def scenario():
        backend.decode_gate = asyncio.Event()
        coordinator, points, _, results = await make_coordinator(backend, image)

        points.add_point(Point(0.1, 0.1))
        first = asyncio.ensure_future(coordinator.request_decode())
        await asyncio.sleep(0)
        assert coordinator.state is DecodeState.RUNNING

        for x in (0.2, 0.3, 0.4):
            points.add_point(Point(x, x, PointLabel.NEGATIVE))
            assert await coordinator.request_decode() is False
        assert coordinator.state is DecodeState.RUNNING_WITH_PENDING_RERUN

        backend.decode_gate.set()
        assert await first is True
        return coordinator, points, results

    coordinator, points, results = asyncio.run(scenario())

    assert len(backend.decode_calls) == 2
    assert backend.decode_calls[-1] == points.points
    assert len(backend.decode_calls[-1]) == 4
    assert backend.max_in_flight == 1
    assert len(results) == 2
    assert results[-1].candidates is backend.results[-1]
    assert coordinator.state is DecodeState.IDLE


def test_refused_without_embedding(backend, image):
    async def scenario():
        coordinator, points, _, _ = await make_coordinator(backend, image, with_embedding=False)
        points.add_point(Point(0.5, 0.5))
        with pytest.raises(DecodeRefused):
            await coordinator.request_decode()
        return coordinator

    coordinator = asyncio.run(scenario())

    assert backend.decode_calls == []
    assert coordinator.state is DecodeState.IDLE


def test_refused_without_points(backend, image):
    async def scenario():
        coordinator, _, _, _ = await make_coordinator(backend, image)
        with pytest.raises(DecodeRefused):
            await coordinator.request_decode()

    asyncio.run(scenario())
    assert backend.decode_calls == []


def test_failure_resets_state_and_drops_pending_rerun(backend, image):
    async def scenario():
        backend.decode_gate = asyncio.Event()
        backend.fail_decode = True
        coordinator, points, _, results = await make_coordinator(backend, image)

        points.add_point(Point(0.5, 0.5))
        first = asyncio.ensure_future(coordinator.request_decode())
        await asyncio.sleep(0)
        points.add_point(Point(0.6, 0.6))
        await coordinator.request_decode()

        backend.decode_gate.set()
        with pytest.raises(DecodeFailure):
            await first
        assert coordinator.state is DecodeState.IDLE
        assert len(backend.decode_calls) == 1

        # Not locked out after a failure
        backend.fail_decode = False
        assert await coordinator.request_decode() is True
        return results

    results = asyncio.run(scenario())

    assert len(results) == 1
    assert len(backend.decode_calls) == 2


def test_stale_result_discarded_after_invalidate(backend, image):
    async def scenario():
        backend.decode_gate = asyncio.Event()
        coordinator, points, _, results = await make_coordinator(backend, image)

        points.add_point(Point(0.5, 0.5))
        running = asyncio.ensure_future(coordinator.request_decode())
        await asyncio.sleep(0)

        coordinator.invalidate()
        points.clear()
        backend.decode_gate.set()
        await running
        return coordinator, results

    coordinator, results = asyncio.run(scenario())

    assert results == []
    assert coordinator.discarded_count == 1
    assert coordinator.state is DecodeState.IDLE


def test_pending_rerun_dropped_when_points_cleared(backend, image):
    async def scenario():
        backend.decode_gate = asyncio.Event()
        coordinator, points, _, results = await make_coordinator(backend, image)

        points.add_point(Point(0.5, 0.5))
        running = asyncio.ensure_future(coordinator.request_decode())
        await asyncio.sleep(0)
        await coordinator.request_decode()

        points.clear()
        backend.decode_gate.set()
        return await running

    assert asyncio.run(scenario()) is True
    assert len(backend.decode_calls) == 1


def test_stale_failure_is_discarded_not_raised(backend, image):
    async def scenario():
        backend.decode_gate = asyncio.Event()
        backend.fail_decode = True
        coordinator, points, _, results = await make_coordinator(backend, image)

        points.add_point(Point(0.5, 0.5))
        running = asyncio.ensure_future(coordinator.request_decode())
        await asyncio.sleep(0)

        coordinator.invalidate()
        backend.decode_gate.set()
        return coordinator, results, await running

    coordinator, results, ran = asyncio.run(scenario())

    assert ran is True
    assert results == []
    assert coordinator.discarded_count == 1
    assert coordinator.state is DecodeState.IDLE


def test_empty_candidate_set_reported_as_decode_failure(backend, image):
    async def scenario():
        backend.empty_result = True
        coordinator, points, _, results = await make_coordinator(backend, image)
        points.add_point(Point(0.5, 0.5))
        with pytest.raises(DecodeFailure):
            await coordinator.request_decode()
        return coordinator, results

    coordinator, results = asyncio.run(scenario())

    assert results == []
    assert coordinator.state is DecodeState.IDLE
