"""
Claim-time errors.

None of these are retryable by the caller that got them: the job is gone,
belongs to someone else, or another claimant already holds it (or it is
finished). The dispatch chain's answer is always the same: log it and move
on to the next queued job.
"""


class ClaimError(Exception):
    code = "claim_error"

    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id


class JobNotFound(ClaimError):
    code = "not_found"

    def __init__(self, job_id: str):
        super().__init__(job_id, f"Job {job_id} not found")


class OwnershipMismatch(ClaimError):
    code = "ownership_mismatch"

    def __init__(self, job_id: str, expected_owner: str):
        super().__init__(job_id, f"Job {job_id} does not belong to {expected_owner}")
        self.expected_owner = expected_owner


class NotClaimable(ClaimError):
    code = "not_claimable"

    def __init__(self, job_id: str, status: str):
        super().__init__(job_id, f"Job {job_id} is {status}, not queued")
        self.status = status
