from healthlog.queue.job_queue import JOB_NAME, JobQueue
from healthlog.queue.worker import WorkerPool

__all__ = [
    "JOB_NAME",
    "JobQueue",
    "WorkerPool",
]
