"""Worker 모델"""

from worker.model.job import Job, JobStatus, QueueConfig, MIN_ATTEMPTS, MAX_ATTEMPTS
from worker.model.handler import HandlerResult

__all__ = [
    'Job',
    'JobStatus',
    'QueueConfig',
    'HandlerResult',
    'MIN_ATTEMPTS',
    'MAX_ATTEMPTS',
]
