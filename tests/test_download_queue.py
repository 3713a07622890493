"""Tests for the model download queue."""

import math
import threading

import pytest

from pttcore.core.bridge.events import MODEL_STATUS_EVENT
from pttcore.core.models import ArtifactStatus, DownloadableArtifact
from pttcore.core.models.queue import DownloadQueueManager, ThroughputEstimator
from pttcore.errors import InvalidArgument, InvalidState, NotFound


def artifact(artifact_id, total, speed=0.0, **kwargs):
    return DownloadableArtifact(
        id=artifact_id, name=artifact_id, total_bytes=total, speed_bytes_per_sec=speed, **kwargs
    )


@pytest.fixture
def queue(bus):
    return DownloadQueueManager(bus, ThroughputEstimator(initial=10.0))


class TestRoundTrip:
    def test_three_ticks_complete_download(self, queue, recorded):
        queue.enqueue(artifact("A", 100, speed=40))
        statuses = []

        for _ in range(3):
            snapshot = queue.tick(1.0)
            statuses.append(snapshot.get("A"))

        assert [a.downloaded_bytes for a in statuses] == [40, 80, 100]
        assert [a.eta_seconds for a in statuses] == [2, 1, 0]
        assert statuses[-1].status is ArtifactStatus.READY
        assert statuses[-1].speed_bytes_per_sec == 0

        seen = []
        for event in recorded.drain():
            status = next(m["status"] for m in event.payload["models"] if m["id"] == "A")
            if not seen or seen[-1] != status:
                seen.append(status)
        assert seen == ["downloading", "ready"]

    def test_enqueue_promotes_immediately(self, queue):
        result = queue.enqueue(artifact("A", 100, speed=40))
        assert result.status is ArtifactStatus.DOWNLOADING
        assert result.eta_seconds == 3

    def test_ticks_after_ready_are_noops(self, queue, recorded):
        queue.enqueue(artifact("A", 10, speed=100))
        queue.tick(1.0)
        recorded.drain()

        before = queue.snapshot()
        after = queue.tick(5.0)
        assert after == before
        assert recorded.drain() == []

    def test_excessive_elapsed_is_clamped(self, queue):
        queue.enqueue(artifact("A", 100, speed=40))
        snapshot = queue.tick(3600.0)
        assert snapshot.get("A").downloaded_bytes == 100
        assert snapshot.get("A").status is ArtifactStatus.READY

    def test_fractional_progress_carries_between_ticks(self, queue):
        queue.enqueue(artifact("A", 10, speed=1))
        for _ in range(4):
            queue.tick(0.25)
        assert queue.get("A").downloaded_bytes == 1


class TestTick:
    def test_zero_elapsed_is_noop(self, queue, recorded):
        queue.enqueue(artifact("A", 100, speed=40))
        recorded.drain()
        snapshot = queue.tick(0)
        assert snapshot.get("A").downloaded_bytes == 0
        assert recorded.drain() == []

    @pytest.mark.parametrize("elapsed", [-1, float("nan"), float("inf"), "soon", None])
    def test_invalid_elapsed_raises(self, queue, elapsed):
        queue.enqueue(artifact("A", 100, speed=40))
        with pytest.raises(InvalidArgument):
            queue.tick(elapsed)
        assert queue.get("A").downloaded_bytes == 0

    def test_progress_is_monotonic(self, queue):
        queue.enqueue(artifact("A", 1000, speed=7))
        previous = 0
        for elapsed in [0.1, 0.5, 0, 2.0, 0.3, 1.7]:
            current = queue.tick(elapsed).get("A").downloaded_bytes
            assert previous <= current <= 1000
            previous = current

    def test_eta_matches_remaining(self, queue):
        queue.enqueue(artifact("A", 100, speed=30))
        current = queue.tick(1.0).get("A")
        assert current.eta_seconds == math.ceil(70 / 30)

    def test_tick_on_empty_queue(self, queue):
        assert queue.tick(1.0).models == ()


class TestAutoPromotion:
    def test_next_artifact_promoted_without_command(self, queue):
        queue.enqueue(artifact("A", 10, speed=10))
        queue.enqueue(artifact("B", 10))

        snapshot = queue.snapshot()
        assert snapshot.get("A").status is ArtifactStatus.DOWNLOADING
        assert snapshot.get("B").status is ArtifactStatus.QUEUED
        assert snapshot.queue_count == 2

        snapshot = queue.tick(1.0)
        assert snapshot.get("A").status is ArtifactStatus.READY
        assert snapshot.get("B").status is ArtifactStatus.DOWNLOADING
        assert snapshot.queue_count == 1

    def test_promoted_artifact_uses_observed_throughput(self, queue):
        queue.enqueue(artifact("A", 100, speed=50))
        queue.enqueue(artifact("B", 100))
        queue.tick(2.0)

        b = queue.get("B")
        assert b.speed_bytes_per_sec == pytest.approx(50.0)
        assert b.eta_seconds == 2

    def test_fifo_admission_order(self, queue):
        queue.enqueue(artifact("A", 10, speed=10))
        queue.enqueue(artifact("C", 10))
        queue.enqueue(artifact("B", 10))

        queue.tick(1.0)
        assert queue.get("C").status is ArtifactStatus.DOWNLOADING
        assert queue.get("B").status is ArtifactStatus.QUEUED

    def test_at_most_one_downloading(self, queue):
        for index in range(6):
            queue.enqueue(artifact(f"m{index}", 10 * (index + 1), speed=5))
            queue.tick(0.7)
            assert len(queue.snapshot().downloading) <= 1

    def test_enqueue_ignores_known_in_flight_artifact(self, queue, recorded):
        queue.enqueue(artifact("A", 100, speed=40))
        recorded.drain()
        result = queue.enqueue(artifact("A", 100, speed=999))
        assert result.status is ArtifactStatus.DOWNLOADING
        assert result.speed_bytes_per_sec == 40
        assert recorded.drain() == []


class TestRegistration:
    def test_register_all_is_not_started(self, queue, recorded):
        snapshot = queue.register_all([artifact("tiny", 10), artifact("base", 20)])
        assert [m.status for m in snapshot.models] == [ArtifactStatus.NOT_STARTED] * 2
        assert snapshot.queue_count == 0
        assert len(recorded.drain()) == 1

    def test_register_is_idempotent(self, queue):
        queue.register(artifact("tiny", 10))
        queue.request_download("tiny")
        again = queue.register(artifact("tiny", 10))
        assert again.status is ArtifactStatus.DOWNLOADING

    def test_request_download_admits_registered(self, queue):
        queue.register(artifact("tiny", 10))
        result = queue.request_download("tiny")
        assert result.status is ArtifactStatus.DOWNLOADING
        assert result.speed_bytes_per_sec == 10.0

    def test_request_download_unknown(self, queue):
        with pytest.raises(NotFound):
            queue.request_download("missing")


class TestSelect:
    def test_select_sets_single_active(self, queue):
        queue.register_all([artifact("a", 1), artifact("b", 1)])
        queue.select("a")
        queue.select("b")
        snapshot = queue.snapshot()
        assert snapshot.active_model == "b"
        assert [m.active for m in snapshot.models] == [False, True]

    def test_select_unknown_changes_nothing(self, queue, recorded):
        queue.register_all([artifact("a", 1), artifact("b", 1)])
        queue.select("a")
        recorded.drain()

        with pytest.raises(NotFound):
            queue.select("unknown")

        assert queue.snapshot().active_model == "a"
        assert recorded.drain() == []


class TestFailAndRetry:
    def test_retry_downloading_raises(self, queue):
        queue.enqueue(artifact("A", 100, speed=40))
        with pytest.raises(InvalidState):
            queue.retry("A")

    def test_retry_unknown_raises(self, queue):
        with pytest.raises(NotFound):
            queue.retry("nope")

    def test_fail_promotes_next(self, queue):
        queue.enqueue(artifact("A", 100, speed=40))
        queue.enqueue(artifact("B", 100))
        queue.fail("A", "connection reset")

        assert queue.get("A").status is ArtifactStatus.FAILED
        assert queue.get("A").eta_seconds == 0
        assert queue.get("B").status is ArtifactStatus.DOWNLOADING

    def test_fail_not_in_flight_raises(self, queue):
        queue.register(artifact("A", 100))
        with pytest.raises(InvalidState):
            queue.fail("A")

    def test_retry_keeps_bytes_and_requeues(self, queue):
        queue.enqueue(artifact("A", 100, speed=40))
        queue.tick(1.0)
        queue.fail("A")

        result = queue.retry("A")
        assert result.status is ArtifactStatus.DOWNLOADING
        assert result.downloaded_bytes == 40

        queue.tick(10.0)
        assert queue.get("A").status is ArtifactStatus.READY

    def test_retry_goes_to_tail(self, queue):
        queue.enqueue(artifact("A", 10, speed=10))
        queue.fail("A")
        queue.enqueue(artifact("B", 10, speed=10))
        queue.enqueue(artifact("C", 10))
        queue.retry("A")

        queue.tick(1.0)
        assert queue.get("C").status is ArtifactStatus.DOWNLOADING
        assert queue.get("A").status is ArtifactStatus.QUEUED


class TestEvents:
    def test_snapshot_event_shape(self, queue, recorded):
        queue.enqueue(artifact("A", 100, speed=40))
        event = recorded.drain()[-1]
        assert event.name == MODEL_STATUS_EVENT
        assert set(event.payload) == {"models", "active_model", "queue_count"}
        assert set(event.payload["models"][0]) == {
            "id",
            "name",
            "status",
            "total_bytes",
            "downloaded_bytes",
            "eta_seconds",
            "speed_bytes_per_sec",
            "active",
        }

    def test_snapshot_is_a_copy(self, queue):
        queue.enqueue(artifact("A", 100, speed=40))
        snapshot = queue.snapshot()
        snapshot.models[0].downloaded_bytes = 99
        assert queue.get("A").downloaded_bytes == 0


class TestThroughputEstimator:
    def test_first_observation_replaces_seed(self):
        estimator = ThroughputEstimator(initial=1000, smoothing=0.5)
        assert estimator.observe(100, 1) == 100

    def test_later_observations_are_smoothed(self):
        estimator = ThroughputEstimator(initial=1000, smoothing=0.5)
        estimator.observe(100, 1)
        assert estimator.observe(300, 1) == pytest.approx(200)
        assert estimator.samples == 2

    def test_empty_observation_ignored(self):
        estimator = ThroughputEstimator(initial=1000)
        assert estimator.observe(0, 1) == 1000
        assert estimator.samples == 0

    def test_invalid_smoothing(self):
        with pytest.raises(ValueError):
            ThroughputEstimator(smoothing=0)


class TestZeroRemaining:
    def test_zero_byte_artifact_is_ready_on_enqueue(self, queue):
        result = queue.enqueue(artifact("empty", 0))
        assert result.status is ArtifactStatus.READY
        assert queue.snapshot().downloading == []
        assert queue.snapshot().queue_count == 0

    def test_zero_byte_artifact_skipped_during_promotion(self, queue):
        queue.enqueue(artifact("A", 10, speed=10))
        queue.enqueue(artifact("empty", 0))
        queue.enqueue(artifact("B", 10))

        snapshot = queue.tick(1.0)
        assert snapshot.get("empty").status is ArtifactStatus.READY
        assert snapshot.get("B").status is ArtifactStatus.DOWNLOADING
        assert len(snapshot.downloading) == 1

    def test_retry_of_full_artifact_completes(self, queue):
        queue.enqueue(artifact("A", 10, speed=10))
        queue.enqueue(artifact("full", 10, downloaded_bytes=10))
        queue.fail("full")

        result = queue.retry("full")
        assert result.status is ArtifactStatus.QUEUED
        queue.tick(1.0)
        assert queue.get("full").status is ArtifactStatus.READY
        assert queue.snapshot().downloading == []


class TestConcurrency:
    def test_single_download_under_concurrent_enqueue_and_tick(self, bus):
        queue = DownloadQueueManager(bus, ThroughputEstimator(initial=1000.0))
        done = threading.Event()
        violations = []
        errors = []

        def enqueuer(prefix):
            try:
                for index in range(200):
                    queue.enqueue(artifact(f"{prefix}-{index}", 50))
            except Exception as e:
                errors.append(e)

        def ticker():
            try:
                while not done.is_set():
                    queue.tick(0.01)
            except Exception as e:
                errors.append(e)

        def watcher():
            while not done.is_set():
                if len(queue.snapshot().downloading) > 1:
                    violations.append(queue.snapshot())

        enqueuers = [threading.Thread(target=enqueuer, args=(f"t{n}",)) for n in range(4)]
        background = [threading.Thread(target=ticker), threading.Thread(target=watcher)]
        for thread in background + enqueuers:
            thread.start()
        for thread in enqueuers:
            thread.join(timeout=30)
        done.set()
        for thread in background:
            thread.join(timeout=30)

        assert errors == []
        assert violations == []
        snapshot = queue.snapshot()
        assert len(snapshot.models) == 800
        assert len(snapshot.downloading) <= 1
        for model in snapshot.models:
            assert 0 <= model.downloaded_bytes <= model.total_bytes
