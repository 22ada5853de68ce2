"""Background work: ad-hoc jobs and the periodic scheduler."""

from .job_runner import JobRunner
from .scheduler import HistoryScheduler, ScheduledJob

__all__ = ["HistoryScheduler", "JobRunner", "ScheduledJob"]
