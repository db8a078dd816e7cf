"""
Outcome reporting to whoever started the job.
"""
from abc import ABC, abstractmethod
from typing import List

from ..models.job import JobOutcome
from ..utils.logger import get_logger

log = get_logger(__name__)


class OutcomeReporter(ABC):
    """Delivers a job's terminal outcome to the orchestrator."""

    @abstractmethod
    def report(self, outcome: JobOutcome) -> None:
        """Send the outcome. Raises if it could not be delivered."""


class LoggingReporter(OutcomeReporter):
    """Reporter for local runs: logs the outcome and keeps it for inspection."""

    def __init__(self):
        self.reported: List[JobOutcome] = []

    def report(self, outcome):
        self.reported.append(outcome)
        if outcome.success:
            log.info("Job %s succeeded%s", outcome.job_id,
                     f": {outcome.message}" if outcome.message else "")
        else:
            log.error("Job %s failed [%s]: %s", outcome.job_id,
                      outcome.reason_code.value, outcome.message)
