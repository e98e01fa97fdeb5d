"""Polling loop for asynchronous deep research jobs."""
import enum, logging, time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class JobState(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


REMOTE_STATES = {
    "CREATED": JobState.SUBMITTED,
    "IN_PROGRESS": JobState.RUNNING,
    "COMPLETED": JobState.COMPLETED,
    "FAILED": JobState.FAILED,
}


def job_state(job: Dict[str, Any]) -> JobState:
    return REMOTE_STATES.get(str(job.get("status", "")).upper(), JobState.RUNNING)


@dataclass
class PollResult:
    state: JobState
    job: Optional[Dict[str, Any]]
    elapsed: float


def poll_job(fetch: Callable[[str], Dict[str, Any]], request_id: str,
             interval: float, timeout: float,
             sleep: Optional[Callable[[float], None]] = None,
             clock: Optional[Callable[[], float]] = None,
             on_tick: Optional[Callable[[float], None]] = None) -> PollResult:
    """Wait, fetch, repeat until the job completes, fails, or `timeout` seconds pass."""
    sleep = sleep or time.sleep
    clock = clock or time.monotonic
    start = clock()
    job: Optional[Dict[str, Any]] = None
    while True:
        sleep(interval)
        job = fetch(request_id)
        elapsed = clock() - start
        state = job_state(job)
        logger.debug("Job %s: %s after %.0fs", request_id, job.get("status"), elapsed)
        if state in (JobState.COMPLETED, JobState.FAILED):
            return PollResult(state, job, elapsed)
        if elapsed > timeout:
            return PollResult(JobState.TIMED_OUT, job, elapsed)
        if on_tick:
            on_tick(elapsed)


def report_text(job: Dict[str, Any]) -> str:
    response = job.get("response") or {}
    choices = response.get("choices") or []
    content = (choices[0].get("message") or {}).get("content") if choices else None
    return content if isinstance(content, str) else ""
