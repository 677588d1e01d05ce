class JobError(Exception):
    """Base exception for job orchestrator errors."""
    pass

class JobNotFoundError(JobError):
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")

class UnknownJobTypeError(JobError):
    def __init__(self, job_type):
        self.job_type = job_type
        super().__init__(f"No handler registered for job type {job_type!r}")

class JobCancelledError(JobError):
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled")

class LeaseError(JobError):
    pass

class LeaseLostError(LeaseError):
    """The caller no longer holds the lease (reclaimed, cancelled or finished)."""
    pass

class StoreUnavailableError(JobError):
    """The job store kept failing; the worker process should exit and be restarted."""
    pass
