"""Tests for RefreshController: state machine, failures, coalescing, polling."""

import asyncio

import pytest

from feedmap.errors import ConfigurationError, FetchFailure
from feedmap.refresh import RefreshController, RefreshOutcome, RefreshState
from feedmap.session import MapSession
from tests.samples import classified_config, collection, quake


class Gate:
    """Payload released only when ``open()`` is called."""

    def __init__(self, payload):
        self.payload = payload
        self.event = asyncio.Event()

    def open(self):
        self.event.set()


class ScriptedFetcher:
    """Fetcher returning (or raising) scripted responses in call order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        response = self.responses.pop(0)
        if isinstance(response, Gate):
            await response.event.wait()
            response = response.payload
        if isinstance(response, Exception):
            raise response
        return response


DOC_A = collection(quake("a1", 1.0), quake("a2", 5.0))
DOC_B = collection(quake("b1", 3.0), quake("b2", 3.5), quake("b3", 0.2))


def _controller(*responses, config=None):
    config = config or classified_config()
    session = MapSession(config)
    fetcher = ScriptedFetcher(*responses)
    controller = RefreshController(session, fetcher)
    states = []
    controller.subscribe(states.append)
    return controller, fetcher, states


def _ids(session):
    return [layer.feature_id for layer in session.current_group]


class TestRefreshCycle:
    """A single refresh: fetch, render, attach."""

    def test_successful_refresh(self):
        """A refresh attaches the rendered group and walks the states."""
        controller, fetcher, states = _controller(DOC_A)
        outcome = asyncio.run(controller.refresh())
        assert isinstance(outcome, RefreshOutcome)
        assert outcome.attached
        assert outcome.result.rendered_count == 2
        assert _ids(controller.session) == ["a1", "a2"]
        assert states == [
            RefreshState.FETCHING,
            RefreshState.RENDERING,
            RefreshState.ATTACHED,
            RefreshState.IDLE,
        ]
        assert controller.state is RefreshState.IDLE
        assert controller.last_result is outcome.result

    def test_second_refresh_replaces_group(self):
        """A later successful refresh swaps the group wholesale."""
        controller, _, _ = _controller(DOC_A, DOC_B)

        async def run():
            await controller.refresh()
            first = controller.session.current_group
            await controller.refresh()
            return first

        first = asyncio.run(run())
        assert _ids(controller.session) == ["b1", "b2", "b3"]
        assert not first.is_attached

    def test_empty_feed(self):
        """An empty feed attaches an empty group."""
        controller, _, _ = _controller(collection())
        outcome = asyncio.run(controller.refresh())
        assert outcome.attached
        assert controller.session.layer_count() == 0

    def test_diagnostics_reported(self):
        """Skipped records show up on the outcome."""
        doc = collection(quake("a", 1.0), {"type": "Feature", "geometry": None, "properties": {}})
        controller, _, _ = _controller(doc)
        outcome = asyncio.run(controller.refresh())
        assert outcome.result.rendered_count == 1
        assert outcome.result.skipped_count == 1


class TestFailures:
    """Failed cycles keep the last good render."""

    def test_fetch_failure_keeps_group(self):
        """A failed fetch leaves the attached group's layers unchanged."""
        controller, _, states = _controller(DOC_A, FetchFailure("HTTP 503", status_code=503))

        async def run():
            await controller.refresh()
            before = controller.session.current_group
            summary = before.summary()
            states.clear()
            outcome = await controller.refresh()
            return before, summary, outcome

        before, summary, outcome = asyncio.run(run())
        assert not outcome.attached
        assert isinstance(outcome.error, FetchFailure)
        assert controller.session.current_group is before
        assert before.summary() == summary
        assert controller.session.layer_count() == 2
        assert states == [RefreshState.FETCHING, RefreshState.FAILED, RefreshState.IDLE]
        assert controller.last_error is outcome.error

    def test_failure_before_any_render(self):
        """A first refresh that fails leaves the map empty but usable."""
        controller, _, _ = _controller(FetchFailure("offline"), DOC_A)

        async def run():
            failed = await controller.refresh()
            ok = await controller.refresh()
            return failed, ok

        failed, ok = asyncio.run(run())
        assert not failed.attached
        assert ok.attached
        assert controller.last_error is None
        assert _ids(controller.session) == ["a1", "a2"]

    def test_malformed_document_keeps_group(self):
        """A payload that is not a collection fails the cycle, not the map."""
        controller, _, states = _controller(DOC_A, {"type": "Topology"})

        async def run():
            await controller.refresh()
            return await controller.refresh()

        outcome = asyncio.run(run())
        assert not outcome.attached
        assert RefreshState.FAILED in states
        assert _ids(controller.session) == ["a1", "a2"]

    def test_unexpected_error_propagates(self):
        """A bug in the fetcher reaches the caller and the controller recovers."""
        controller, _, _ = _controller(RuntimeError("boom"), DOC_A)

        async def run():
            with pytest.raises(RuntimeError):
                await controller.refresh()
            assert controller.state is RefreshState.IDLE
            return await controller.refresh()

        outcome = asyncio.run(run())
        assert outcome.attached

    def test_listener_errors_do_not_break_cycle(self):
        """A failing listener is logged; the refresh still completes."""
        controller, _, _ = _controller(DOC_A)

        def bad_listener(state):
            raise ValueError("listener bug")

        controller.subscribe(bad_listener)
        assert asyncio.run(controller.refresh()).attached


class TestCoalescing:
    """One pipeline at a time; the last request wins."""

    def test_stale_while_revalidate(self):
        """The previous group stays attached while a fetch is in flight."""
        gate = Gate(DOC_B)
        controller, _, _ = _controller(DOC_A, gate)

        async def run():
            await controller.refresh()
            before = controller.session.current_group
            pending = controller.request_refresh()
            await asyncio.sleep(0)
            assert controller.state is RefreshState.FETCHING
            assert controller.session.current_group is before
            gate.open()
            await pending

        asyncio.run(run())
        assert _ids(controller.session) == ["b1", "b2", "b3"]

    def test_slow_first_fetch_is_discarded(self):
        """A slow first fetch resolving after a second request never attaches."""
        slow = Gate(DOC_A)
        controller, fetcher, _ = _controller(slow, DOC_B)

        async def run():
            first = controller.request_refresh()
            await asyncio.sleep(0)
            assert controller.in_flight
            second = controller.request_refresh()
            slow.open()
            return await first, await second

        first, second = asyncio.run(run())
        assert fetcher.calls == 2
        assert first is second
        assert first.discarded == 1
        assert _ids(controller.session) == ["b1", "b2", "b3"]

    def test_back_to_back_requests_share_one_fetch(self):
        """Requests made before the pipeline starts are served by one cycle."""
        controller, fetcher, _ = _controller(DOC_A)

        async def run():
            futures = [controller.request_refresh() for _ in range(3)]
            return await asyncio.gather(*futures)

        outcomes = asyncio.run(run())
        assert fetcher.calls == 1
        assert all(outcome is outcomes[0] for outcome in outcomes)

    def test_never_concurrent(self):
        """At most one fetch is in flight at any time."""
        active = []
        peak = []

        async def fetcher():
            active.append(1)
            peak.append(len(active))
            await asyncio.sleep(0.001)
            active.pop()
            return DOC_A

        controller = RefreshController(MapSession(classified_config()), fetcher)

        async def run():
            futures = []
            for _ in range(5):
                futures.append(controller.request_refresh())
                await asyncio.sleep(0)
            await asyncio.gather(*futures)

        asyncio.run(run())
        assert max(peak) == 1

    def test_failed_superseded_cycle_is_discarded(self):
        """A superseded cycle that fails does not report the failure."""
        slow = Gate(FetchFailure("timeout"))
        controller, _, _ = _controller(slow, DOC_B)

        async def run():
            first = controller.request_refresh()
            await asyncio.sleep(0)
            second = controller.request_refresh()
            slow.open()
            return await first, await second

        first, second = asyncio.run(run())
        assert first.attached and second.attached
        assert controller.last_error is None


class TestPolling:
    """Periodic refresh."""

    def test_start_requires_interval(self):
        """Polling without an interval is a configuration error."""
        controller, _, _ = _controller(DOC_A, config=classified_config(refresh_interval_ms=None))

        async def run():
            controller.start()

        with pytest.raises(ConfigurationError):
            asyncio.run(run())

    def test_polls_until_stopped(self):
        """start() refreshes repeatedly; stop() halts it and keeps the group."""
        config = classified_config(refresh_interval_ms=5)
        controller, fetcher, _ = _controller(*[DOC_A, DOC_B] * 20, config=config)

        async def run():
            controller.start()
            while fetcher.calls < 3:
                await asyncio.sleep(0.005)
            await controller.stop()

        asyncio.run(run())
        assert fetcher.calls >= 3
        assert controller.session.current_group is not None
        assert controller.state is RefreshState.IDLE

    def test_polling_survives_unexpected_error(self):
        """A cycle failing with a foreign error does not end polling."""
        config = classified_config(refresh_interval_ms=5)
        controller, fetcher, _ = _controller(
            ConnectionError("socket reset"), *[DOC_A, DOC_B] * 20, config=config
        )

        async def run():
            task = controller.start()
            while fetcher.calls < 3 and not task.done():
                await asyncio.sleep(0.005)
            alive = not task.done()
            await controller.stop()
            return alive

        assert asyncio.run(run())
        assert fetcher.calls >= 3
        assert controller.session.current_group is not None

    def test_stop_cancels_in_flight(self):
        """stop() cancels a pending refresh without touching the map."""
        gate = Gate(DOC_B)
        controller, _, _ = _controller(DOC_A, gate)

        async def run():
            await controller.refresh()
            pending = controller.request_refresh()
            await asyncio.sleep(0)
            await controller.stop()
            return pending

        pending = asyncio.run(run())
        assert pending.cancelled()
        assert _ids(controller.session) == ["a1", "a2"]
