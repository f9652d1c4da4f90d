"""
Seed script — queues a handful of sample CVs for one owner and triggers dispatch.

Usage:
    python -m scripts.seed_jobs [owner]

This creates:
- 2 short, well-structured CVs (taken by the quick heuristic path)
- 1 long free-form CV (goes to Gemini, or the fallback without an API key)
- 1 CV asking for a single field

Then it calls POST /dispatch/ once and polls GET /status/{owner} until the
queue is complete. Run it after `docker compose up`.
"""

import sys
import time

import httpx

BASE_URL = "http://localhost:8000"

LONG_CV = (
    "Curriculum Vitae\n"
    "Mariana Costa Ribeiro\n"
    "Rua das Flores 120, Campinas - SP\n"
    "mariana.ribeiro@example.com | (19) 98765-4321\n\n"
    "Objective: backend developer position focused on data pipelines.\n"
    + "Experience: built ETL jobs, maintained PostgreSQL clusters, on-call rotation. " * 20
)


def seed(owner: str = "demo-user"):
    client = httpx.Client(base_url=BASE_URL, timeout=10.0)

    jobs = [
        {
            "file_name": "joao.pdf",
            "text": "João Pedro Almeida\n32 anos\njoao.almeida@example.com\n(11) 91234-5678",
            "fields": ["name", "age", "email", "contacts"],
        },
        {
            "file_name": "ana.pdf",
            "text": "Ana Souza\nNascida em 12/03/1995\nana.souza@example.com",
            "fields": ["name", "age", "email"],
        },
        {
            "file_name": "mariana.pdf",
            "text": LONG_CV,
            "fields": ["name", "email", "contacts"],
        },
        {
            "file_name": "carlos.pdf",
            "text": "Carlos Henrique Lima, 45 years, project manager",
            "fields": ["name"],
        },
    ]

    print(f"Submitting {len(jobs)} jobs for {owner} to {BASE_URL}...\n")

    for job in jobs:
        resp = client.post("/jobs/", json={"owner": owner, **job})
        resp.raise_for_status()
        data = resp.json()
        print(f"  [{data['status']}] {data['file_name']} (id: {data['id'][:8]}...)")

    client.post("/dispatch/", json={"owner": owner}).raise_for_status()
    print("\nDispatch triggered, waiting for the queue to drain...")

    for _ in range(60):
        status = client.get(f"/status/{owner}", params={"resume": "true"}).json()
        print(
            f"  progress {status['progress']:>3}%  queued={status['queued']} "
            f"claimed={status['claimed']} done={status['done']} dead={status['dead']}"
        )
        if status["is_complete"]:
            break
        time.sleep(1)

    print(f"\nResults:  curl '{BASE_URL}/jobs/?owner={owner}'")


if __name__ == "__main__":
    seed(*sys.argv[1:2])
