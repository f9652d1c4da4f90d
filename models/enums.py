"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("queued", not "JobStatus.QUEUED")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters
- Typos become immediate errors instead of silent bugs
"""

import enum


class JobStatus(str, enum.Enum):
    QUEUED = "queued"      # waiting for a claimant
    CLAIMED = "claimed"    # exclusively held by one executor
    DONE = "done"          # extraction succeeded (terminal)
    DEAD = "dead"          # retry budget exhausted (terminal)

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.DEAD)


TERMINAL_STATUSES = (JobStatus.DONE.value, JobStatus.DEAD.value)


class ExtractField(str, enum.Enum):
    NAME = "name"          # always extracted
    AGE = "age"
    EMAIL = "email"
    CONTACTS = "contacts"  # phone numbers


class ContinuationKind(str, enum.Enum):
    DRAIN = "drain"        # keep an owner's queue draining
    SWEEP = "sweep"        # reclaim stale claims + retention across all owners
