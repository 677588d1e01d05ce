from enum import StrEnum, auto

class JobStatus(StrEnum):
    QUEUED = auto()      # Created or re-queued, waiting for lease
    RUNNING = auto()     # Leased by a worker (lease_until bounds the claim)
    SUCCEEDED = auto()   # Result written, terminal
    FAILED = auto()      # Attempts exhausted, terminal
    CANCELLED = auto()   # Stopped by an operator, terminal

CANCELLABLE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.RUNNING})

class JobType(StrEnum):
    SCRAPE_STATISTICS = auto()
    SCRAPE_STYLES = auto()
    DEEP_SCRAPE_STYLES = auto()
    UPDATE_STYLE_STOCK = auto()
    SCRAPE_CUSTOMERS = auto()
    EXPORT_OVERVIEW = auto()

class LogLevel(StrEnum):
    INFO = auto()
    ERROR = auto()

class JobEvent(StrEnum):
    """Message codes written to the job log by the core."""
    ENQUEUED = auto()
    LEASED = auto()
    TASK_FAILED = auto()
    REQUEUED = auto()
    SUCCEEDED = auto()
    FAILED = auto()
    CANCELLED = auto()
    LEASE_EXPIRED = auto()
