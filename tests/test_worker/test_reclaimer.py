"""
Tests for the stuck-job reclaimer.
"""

from models.enums import JobStatus
from worker.reclaimer import Reclaimer


def test_claim_inside_liveness_window_is_left_alone(store, clock):
    job_id = store.add("u1", "cv", ["name"])
    store.claim(job_id, "u1")
    clock.advance(89)

    result = Reclaimer(store, liveness_window=90).reclaim("u1")

    assert (result.reset, result.killed) == (0, 0)
    assert store.get(job_id).status == JobStatus.CLAIMED.value


def test_stale_claim_is_reset_with_attempt_incremented(store, clock):
    job_id = store.add("u1", "cv", ["name"], max_attempts=3)
    store.claim(job_id, "u1")
    clock.advance(91)

    result = Reclaimer(store, liveness_window=90).reclaim("u1")

    assert (result.reset, result.killed) == (1, 0)
    job = store.get(job_id)
    assert job.status == JobStatus.QUEUED.value
    assert job.attempt == 1
    assert job.claimed_at is None
    assert "Claim expired after 90s" in job.error


def test_stale_claim_on_last_attempt_is_killed(store, clock):
    job_id = store.add("u1", "cv", ["name"], max_attempts=1)
    store.claim(job_id, "u1")
    clock.advance(120)

    result = Reclaimer(store, liveness_window=90).reclaim("u1")

    assert (result.reset, result.killed) == (0, 1)
    job = store.get(job_id)
    assert job.status == JobStatus.DEAD.value
    assert job.error.startswith("Retries exhausted (1/1)")


def test_reclaim_only_touches_the_given_owner(store, clock):
    mine = store.add("u1", "cv", ["name"])
    theirs = store.add("u2", "cv", ["name"])
    store.claim(mine, "u1")
    store.claim(theirs, "u2")
    clock.advance(200)

    Reclaimer(store, liveness_window=90).reclaim("u1")

    assert store.get(mine).status == JobStatus.QUEUED.value
    assert store.get(theirs).status == JobStatus.CLAIMED.value


def test_reclaim_twice_is_idempotent(store, clock):
    job_id = store.add("u1", "cv", ["name"])
    store.claim(job_id, "u1")
    clock.advance(200)
    reclaimer = Reclaimer(store, liveness_window=90)

    first = reclaimer.reclaim("u1")
    second = reclaimer.reclaim("u1")

    assert first.reset == 1
    assert (second.reset, second.killed) == (0, 0)
    assert store.get(job_id).attempt == 1


def test_reclaim_loses_race_to_completion(store, clock):
    """A claim completed between the scan and the write is not reset."""
    job_id = store.add("u1", "cv", ["name"])
    claimed = store.claim(job_id, "u1")
    clock.advance(200)

    class CompletingStore:
        def __getattr__(self, name):
            return getattr(store, name)

        def find_stale_claims(self, owner, cutoff):
            stale = store.find_stale_claims(owner, cutoff)
            store.complete(claimed, {"name": "Finished Just Now"}, "gemini")
            return stale

    result = Reclaimer(CompletingStore(), liveness_window=90).reclaim("u1")

    assert result.reset == 0
    assert store.get(job_id).status == JobStatus.DONE.value


def test_writes_are_chunked_and_failures_isolated(store, clock):
    ids = [store.add("u1", f"cv {i}", ["name"]) for i in range(5)]
    for job_id in ids:
        store.claim(job_id, "u1")
    clock.advance(200)
    poisoned = ids[2]
    chunk_sizes = []

    class FlakyStore:
        def __getattr__(self, name):
            return getattr(store, name)

        def apply_transitions(self, transitions):
            chunk_sizes.append(len(transitions))
            if any(t.job_id == poisoned for t in transitions):
                raise RuntimeError("write rejected")
            return store.apply_transitions(transitions)

    result = Reclaimer(FlakyStore(), liveness_window=90, batch_limit=2).reclaim("u1")

    assert result.reset == 4
    assert result.failed == 1
    assert max(chunk_sizes) <= 2
    assert store.get(poisoned).status == JobStatus.CLAIMED.value
    for job_id in ids:
        if job_id != poisoned:
            assert store.get(job_id).status == JobStatus.QUEUED.value
