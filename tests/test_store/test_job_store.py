"""
Tests for JobStore range queries, claim resolution and retention.
"""

import random
from datetime import timedelta

import pytest

from models.enums import JobStatus
from store.errors import NotClaimable
from store.job_store import Transition


def _enqueue(store, clock, owner, count, spacing=1):
    ids = []
    for i in range(count):
        ids.append(store.add(owner, f"cv {i}", ["name"]))
        clock.advance(spacing)
    return ids


# ── Ordering ────────────────────────────────────────────────────


def test_find_queued_is_fifo_by_enqueue_time(store, clock):
    ids = _enqueue(store, clock, "u1", 4)

    assert store.find_queued("u1", 10) == ids
    assert store.find_queued("u1", 2) == ids[:2]


def test_find_queued_breaks_ties_by_id(store, clock):
    ids = [store.add("u1", "cv", ["name"], job_id=job_id) for job_id in ("b", "a", "c")]
    assert len(ids) == 3

    assert store.find_queued("u1", 10) == ["a", "b", "c"]


def test_find_queued_is_scoped_to_owner(store, clock):
    mine = _enqueue(store, clock, "u1", 2)
    _enqueue(store, clock, "u2", 3)

    assert store.find_queued("u1", 10) == mine
    assert store.count_queued("u2") == 3


def test_reset_keeps_place_in_line(store, clock):
    first, second = _enqueue(store, clock, "u1", 2)
    original_enqueued_at = store.get(first).enqueued_at

    claimed = store.claim(first, "u1")
    store.apply_transitions([
        Transition(first, claimed.claim_token, JobStatus.QUEUED, attempt=1, error="timeout"),
    ])

    job = store.get(first)
    assert job.status == JobStatus.QUEUED.value
    assert job.claimed_at is None
    assert job.claim_token is None
    assert job.enqueued_at == original_enqueued_at
    assert store.find_queued("u1", 10) == [first, second]


# ── Claim resolution ────────────────────────────────────────────


def test_complete_writes_outcome_once(store):
    job_id = store.add("u1", "cv", ["name"])
    claimed = store.claim(job_id, "u1")

    assert store.complete(claimed, {"name": "Ana Souza"}, "gemini", 120.5) is True

    job = store.get(job_id)
    assert job.status == JobStatus.DONE.value
    assert job.result == {"name": "Ana Souza"}
    assert job.extraction_method == "gemini"
    assert job.processing_time_ms == 120.5
    assert job.completed_at is not None
    assert job.claim_token is None


def test_complete_with_stale_token_is_rejected(store):
    job_id = store.add("u1", "cv", ["name"])
    first = store.claim(job_id, "u1")
    store.apply_transitions([
        Transition(job_id, first.claim_token, JobStatus.QUEUED, attempt=1, error="expired"),
    ])
    second = store.claim(job_id, "u1")

    assert store.complete(first, {"name": "Stale Result"}, "gemini") is False
    assert store.complete(second, {"name": "Fresh Result"}, "gemini") is True
    assert store.get(job_id).result == {"name": "Fresh Result"}


def test_apply_transitions_skips_resolved_claims(store, clock):
    a, b = _enqueue(store, clock, "u1", 2)
    claim_a = store.claim(a, "u1")
    claim_b = store.claim(b, "u1")
    store.complete(claim_b, {"name": "Done Already"}, "gemini")

    applied = store.apply_transitions([
        Transition(a, claim_a.claim_token, JobStatus.DEAD, attempt=3, error="gave up"),
        Transition(b, claim_b.claim_token, JobStatus.DEAD, attempt=3, error="gave up"),
    ])

    assert [t.job_id for t in applied] == [a]
    assert store.get(a).status == JobStatus.DEAD.value
    assert store.get(b).status == JobStatus.DONE.value


def test_transition_to_claimed_is_refused(store):
    job_id = store.add("u1", "cv", ["name"])
    claimed = store.claim(job_id, "u1")

    with pytest.raises(ValueError):
        store.apply_transitions([
            Transition(job_id, claimed.claim_token, JobStatus.CLAIMED, attempt=0, error=""),
        ])


def test_terminal_jobs_ignore_any_later_operation(store):
    """
    Drive jobs to done/dead, then throw random sequences of every mutating
    operation at them. Status and outcome must never change again.
    """
    rng = random.Random(1234)
    snapshots = {}

    for i in range(6):
        job_id = store.add("u1", f"cv {i}", ["name"])
        claimed = store.claim(job_id, "u1")
        if i % 2:
            store.complete(claimed, {"name": f"Person Number {i}"}, "gemini")
        else:
            store.apply_transitions([
                Transition(job_id, claimed.claim_token, JobStatus.DEAD, attempt=3, error="boom"),
            ])
        job = store.get(job_id)
        snapshots[job_id] = (claimed, job.status, job.result, job.error, job.completed_at)

    for _ in range(60):
        job_id = rng.choice(list(snapshots))
        claimed = snapshots[job_id][0]
        op = rng.choice(["claim", "complete", "reset", "kill"])

        if op == "claim":
            with pytest.raises(NotClaimable):
                store.claim(job_id, "u1")
        elif op == "complete":
            assert store.complete(claimed, {"name": "Overwrite Attempt"}, "fallback") is False
        else:
            target = JobStatus.QUEUED if op == "reset" else JobStatus.DEAD
            applied = store.apply_transitions([
                Transition(job_id, claimed.claim_token, target, attempt=9, error="late"),
            ])
            assert applied == []

    for job_id, (_, status, result, error, completed_at) in snapshots.items():
        job = store.get(job_id)
        assert (job.status, job.result, job.error, job.completed_at) == (
            status, result, error, completed_at,
        )


# ── Sweep queries ───────────────────────────────────────────────


def test_stale_claim_queries_use_strict_cutoff(store, clock):
    job_id = store.add("u1", "cv", ["name"])
    store.claim(job_id, "u1")
    claimed_at = clock()

    assert store.find_stale_claims("u1", claimed_at) == []
    assert [j.id for j in store.find_stale_claims("u1", claimed_at + timedelta(seconds=1))] == [job_id]
    assert store.owners_with_stale_claims(claimed_at + timedelta(seconds=1)) == ["u1"]


def test_owners_needing_dispatch(store, clock):
    # u1: queued work, nobody on it
    store.add("u1", "cv", ["name"])
    # u2: queued work with a live claim
    store.add("u2", "cv", ["name"])
    store.claim(store.add("u2", "cv", ["name"]), "u2")
    # u3: queued work, only an abandoned claim
    store.add("u3", "cv", ["name"])
    store.claim(store.add("u3", "cv", ["name"]), "u3")
    # u4: nothing queued
    store.claim(store.add("u4", "cv", ["name"]), "u4")

    clock.advance(100)
    # u2 claims again, so its claim is fresh relative to the cutoff
    store.claim(store.add("u2", "cv", ["name"]), "u2")
    cutoff = clock() - timedelta(seconds=90)

    assert sorted(store.owners_needing_dispatch(cutoff)) == ["u1", "u3"]


# ── Retention ───────────────────────────────────────────────────


def test_delete_expired_removes_only_old_terminal_jobs(store, clock):
    old_done = store.add("u1", "cv", ["name"])
    store.complete(store.claim(old_done, "u1"), {"name": "Old Result"}, "gemini")
    old_queued = store.add("u1", "cv", ["name"])

    clock.advance(7200)
    fresh_done = store.add("u1", "cv", ["name"])
    store.complete(store.claim(fresh_done, "u1"), {"name": "New Result"}, "gemini")

    deleted = store.delete_expired(clock() - timedelta(hours=1), batch_size=500)

    assert deleted == 1
    assert store.get(old_done) is None
    assert store.get(old_queued) is not None
    assert store.get(fresh_done) is not None


def test_delete_expired_works_in_batches(store, clock):
    for _ in range(7):
        job_id = store.add("u1", "cv", ["name"])
        store.complete(store.claim(job_id, "u1"), {"name": "Some Person"}, "gemini")
    clock.advance(7200)

    assert store.delete_expired(clock() - timedelta(hours=1), batch_size=3) == 7
    assert store.status_rows("u1") == []
