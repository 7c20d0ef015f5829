"""
Job scheduling.

- JobRecord / JobStatus: job state and lifecycle
- JobStore: storage of job records
- HandlerRegistry: job type -> async handler
- JobQueue: scheduler, retry/timeout policy, cleanup and stats
- payloads: typed data for the scrape/analyze/alert job types
"""

from .handlers import HandlerRegistry, JobHandler
from .payloads import (
    PAYLOAD_SCHEMAS,
    AlertJobData,
    AnalyzeJobData,
    JobPayload,
    JobType,
    ScrapeJobData,
    ScrapeOptions,
    decode_payload,
)
from .queue import JobQueue
from .store import InMemoryJobStore, JobFilter, JobStore
from .types import (
    VALID_TRANSITIONS,
    JobOptions,
    JobRecord,
    JobStats,
    JobStatus,
    generate_job_id,
)

__all__ = [
    # Types
    "JobStatus",
    "JobRecord",
    "JobOptions",
    "JobStats",
    "VALID_TRANSITIONS",
    "generate_job_id",
    # Store
    "JobStore",
    "InMemoryJobStore",
    "JobFilter",
    # Handlers
    "HandlerRegistry",
    "JobHandler",
    # Queue
    "JobQueue",
    # Payloads
    "JobType",
    "JobPayload",
    "PAYLOAD_SCHEMAS",
    "ScrapeOptions",
    "ScrapeJobData",
    "AnalyzeJobData",
    "AlertJobData",
    "decode_payload",
]
