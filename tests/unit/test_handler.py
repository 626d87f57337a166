"""Unit tests for NotificationPusher: lookup, marker patch and fan-out ordering."""

from __future__ import annotations

import asyncio

from structlog.testing import capture_logs

from eventrouter.models.events import ClusterEvent
from eventrouter.models.notifications import NotificationJob
from eventrouter.notifications.queue import DispatchQueue, QueueClosedError
from eventrouter.objects.resolver import ObjectResolver
from eventrouter.registrations import RegistrationDirectory
from eventrouter.router.handler import NotificationPusher
from tests.conftest import FakeClusterClient, ListSink, make_event, make_registration, ownership_chain

EVENT_NAME = "my-app-7b4f8c6d-x2kj.17a8b"


def _cluster(*registrations: dict) -> FakeClusterClient:
    cluster = FakeClusterClient(*ownership_chain(), make_event(), *registrations)
    return cluster


def _pusher(cluster: FakeClusterClient, sink) -> NotificationPusher:
    resolver = ObjectResolver(cluster)
    return NotificationPusher(resolver=resolver, directory=RegistrationDirectory(resolver), queue=sink)


class _ClosedSink:
    def __init__(self) -> None:
        self.attempts = 0

    async def push(self, job: NotificationJob) -> None:
        self.attempts += 1
        raise QueueClosedError("closed")


class TestNotificationPusher:
    async def test_fans_out_one_job_per_registration(self) -> None:
        cluster = _cluster(
            make_registration("audit", "audit-svc", "http://audit/events"),
            make_registration("portal", "portal-svc", "http://portal/events"),
        )
        sink = ListSink()

        queued = await _pusher(cluster, sink).handle(ClusterEvent.from_dict(make_event()))

        assert queued == 2
        assert sorted(job.registration.service_name for job in sink.jobs) == ["audit-svc", "portal-svc"]
        assert {job.payload.deployment_id for job in sink.jobs} == {"abc123"}
        assert sink.jobs[0].payload is sink.jobs[1].payload

    async def test_event_patched_before_fan_out(self) -> None:
        cluster = _cluster(make_registration("audit", "audit-svc", "http://audit/events"))
        await _pusher(cluster, ListSink()).handle(ClusterEvent.from_dict(make_event()))

        assert cluster.patches == [
            (
                "Event",
                "demo",
                EVENT_NAME,
                {"metadata": {"labels": {"krateo.io/composition-id": "abc123", "krateo.io/patched-by": "krateo"}}},
            )
        ]
        labels = cluster.find("Event", EVENT_NAME)["metadata"]["labels"]
        assert labels["krateo.io/patched-by"] == "krateo"

    async def test_patch_failure_aborts_without_jobs(self) -> None:
        cluster = _cluster(make_registration("audit", "audit-svc", "http://audit/events"))
        cluster.fail_patch = ConnectionError("apiserver unreachable")
        sink = ListSink()

        assert await _pusher(cluster, sink).handle(ClusterEvent.from_dict(make_event())) == 0
        assert sink.jobs == []

    async def test_lookup_failure_still_marks_and_notifies(self) -> None:
        """A failed lookup means no id: only the marker is written, payload id is empty."""
        cluster = _cluster(make_registration("audit", "audit-svc", "http://audit/events"))
        cluster.fail_get = ConnectionError("apiserver unreachable")
        sink = ListSink()

        assert await _pusher(cluster, sink).handle(ClusterEvent.from_dict(make_event())) == 1
        assert cluster.patches[0][3] == {"metadata": {"labels": {"krateo.io/patched-by": "krateo"}}}
        assert sink.jobs[0].payload.deployment_id == ""

    async def test_unattributed_event(self) -> None:
        cluster = FakeClusterClient(make_event(), make_registration("audit", "audit-svc", "http://audit/events"))
        sink = ListSink()

        assert await _pusher(cluster, sink).handle(ClusterEvent.from_dict(make_event())) == 1
        assert "krateo.io/composition-id" not in cluster.find("Event", EVENT_NAME)["metadata"]["labels"]
        assert sink.jobs[0].payload.deployment_id == ""

    async def test_registration_listing_failure(self) -> None:
        cluster = _cluster()
        cluster.fail_list = ConnectionError("boom")
        sink = ListSink()

        assert await _pusher(cluster, sink).handle(ClusterEvent.from_dict(make_event())) == 0
        assert len(cluster.patches) == 1
        assert sink.jobs == []

    async def test_no_registrations(self) -> None:
        sink = ListSink()
        assert await _pusher(_cluster(), sink).handle(ClusterEvent.from_dict(make_event())) == 0
        assert sink.jobs == []

    async def test_closed_queue_stops_fan_out(self) -> None:
        cluster = _cluster(
            make_registration("audit", "audit-svc", "http://audit/events"),
            make_registration("portal", "portal-svc", "http://portal/events"),
        )
        sink = _ClosedSink()

        assert await _pusher(cluster, sink).handle(ClusterEvent.from_dict(make_event())) == 0
        assert sink.attempts == 1


# ---------------------------------------------------------------------------
# Log context
# ---------------------------------------------------------------------------


class TestFailureLogs:
    async def test_patch_failure_logged_with_event_identity(self) -> None:
        cluster = _cluster(make_registration("audit", "audit-svc", "http://audit/events"))
        cluster.fail_patch = ConnectionError("apiserver unreachable")

        with capture_logs() as logs:
            await _pusher(cluster, ListSink()).handle(ClusterEvent.from_dict(make_event()))

        failed = [entry for entry in logs if entry["event"] == "event_patch_failed"]
        assert len(failed) == 1
        assert failed[0]["event_name"] == EVENT_NAME
        assert failed[0]["namespace"] == "demo"
        assert failed[0]["log_level"] == "error"

    async def test_lookup_failure_logged_with_event_identity(self) -> None:
        cluster = _cluster(make_registration("audit", "audit-svc", "http://audit/events"))
        cluster.fail_get = ConnectionError("apiserver unreachable")

        with capture_logs() as logs:
            await _pusher(cluster, ListSink()).handle(ClusterEvent.from_dict(make_event()))

        failed = [entry for entry in logs if entry["event"] == "composition_id_lookup_failed"]
        assert len(failed) == 1
        assert failed[0]["event_name"] == EVENT_NAME
        assert failed[0]["namespace"] == "demo"
        assert failed[0]["involved_object"] == "my-app-7b4f8c6d-x2kj"


# ---------------------------------------------------------------------------
# Timeout and backpressure
# ---------------------------------------------------------------------------


class _SlowClusterClient(FakeClusterClient):
    def __init__(self, *objects: dict, get_delay: float = 0.0) -> None:
        super().__init__(*objects)
        self.get_delay = get_delay

    async def get(self, gvk, name: str, namespace: str = ""):
        await asyncio.sleep(self.get_delay)
        return await super().get(gvk, name, namespace)


class TestTimeout:
    async def test_slow_lookup_times_out_before_patch(self) -> None:
        cluster = _SlowClusterClient(
            *ownership_chain(),
            make_event(),
            make_registration("audit", "audit-svc", "http://audit/events"),
            get_delay=5.0,
        )
        sink = ListSink()
        resolver = ObjectResolver(cluster)
        pusher = NotificationPusher(resolver, RegistrationDirectory(resolver), sink, timeout=0.05)

        with capture_logs() as logs:
            queued = await asyncio.wait_for(pusher.handle(ClusterEvent.from_dict(make_event())), timeout=2.0)

        assert queued == 0
        assert cluster.patches == []
        assert sink.jobs == []
        timed_out = [entry for entry in logs if entry["event"] == "event_processing_timeout"]
        assert len(timed_out) == 1
        assert timed_out[0]["event_name"] == EVENT_NAME
        assert timed_out[0]["namespace"] == "demo"
        assert timed_out[0]["timeout"] == 0.05

    async def test_zero_timeout_disables_bound(self) -> None:
        cluster = _SlowClusterClient(
            *ownership_chain(),
            make_event(),
            make_registration("audit", "audit-svc", "http://audit/events"),
            get_delay=0.02,
        )
        sink = ListSink()
        resolver = ObjectResolver(cluster)
        pusher = NotificationPusher(resolver, RegistrationDirectory(resolver), sink, timeout=0)

        assert await pusher.handle(ClusterEvent.from_dict(make_event())) == 1
        assert sink.jobs[0].payload.deployment_id == "abc123"

    async def test_full_queue_does_not_cut_fan_out_short(self) -> None:
        """A backpressured queue outlasting the timeout still receives every job."""
        cluster = _cluster(
            make_registration("audit", "audit-svc", "http://audit/events"),
            make_registration("billing", "billing-svc", "http://billing/events"),
            make_registration("portal", "portal-svc", "http://portal/events"),
        )
        delivered: list[str] = []

        async def slow_deliver(job: NotificationJob) -> None:
            await asyncio.sleep(0.2)
            delivered.append(job.registration.service_name)

        queue = DispatchQueue(slow_deliver, max_capacity=1, worker_threads=1)
        await queue.start()
        resolver = ObjectResolver(cluster)
        pusher = NotificationPusher(resolver, RegistrationDirectory(resolver), queue, timeout=0.05)

        try:
            queued = await asyncio.wait_for(pusher.handle(ClusterEvent.from_dict(make_event())), timeout=5.0)
        finally:
            await queue.terminate(timeout=5.0)

        assert queued == 3
        assert sorted(delivered) == ["audit-svc", "billing-svc", "portal-svc"]
        assert len(cluster.patches) == 1
