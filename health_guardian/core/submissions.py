"""
In-memory submission tracking, one tracker per browser session.

Each form submission gets the next id from its session's tracker. Only the
latest submission may move the loading indicator or fill the result slot,
so a slow, superseded pipeline finishing late is ignored
(last submission wins, not last completion).
"""

import logging
from collections import OrderedDict
from typing import Optional

from health_guardian.models.schemas import AnalysisResult, ErrorInfo, PipelineStage, SessionState

logger = logging.getLogger(__name__)

STAGE_LABELS = {
    PipelineStage.RESOLVING_LOCATION: "Finding your location...",
    PipelineStage.FETCHING_WEATHER: "Getting weather data...",
    PipelineStage.FETCHING_AIR_QUALITY: "Getting air quality data...",
    PipelineStage.FETCHING_POLLEN: "Getting pollen data...",
    PipelineStage.GENERATING_RECOMMENDATION: "Generating your recommendations...",
}

_TERMINAL = (PipelineStage.DONE, PipelineStage.FAILED)


class SubmissionTracker:
    def __init__(self, session_id: str):
        self.session_id = session_id
        self._latest_id = 0
        self._stage = PipelineStage.IDLE
        self._result: Optional[AnalysisResult] = None
        self._error: Optional[ErrorInfo] = None

    @property
    def latest_id(self) -> int:
        return self._latest_id

    def begin(self) -> int:
        self._latest_id += 1
        self._stage = PipelineStage.IDLE
        self._error = None
        return self._latest_id

    def is_current(self, submission_id: int) -> bool:
        return submission_id == self._latest_id

    def _accept(self, submission_id: int, what: str) -> bool:
        if self.is_current(submission_id):
            return True
        logger.info(
            "Session %s: discarding %s from superseded submission %s (latest is %s)",
            self.session_id,
            what,
            submission_id,
            self._latest_id,
        )
        return False

    def update_stage(self, submission_id: int, stage: PipelineStage) -> bool:
        if not self._accept(submission_id, f"stage {stage.value}"):
            return False
        self._stage = stage
        return True

    def publish_result(self, submission_id: int, result: AnalysisResult) -> bool:
        if not self._accept(submission_id, "result"):
            return False
        self._stage = PipelineStage.DONE
        self._result = result
        self._error = None
        return True

    def publish_error(self, submission_id: int, error: ErrorInfo) -> bool:
        if not self._accept(submission_id, "error"):
            return False
        self._stage = PipelineStage.FAILED
        self._error = error
        return True

    def state(self) -> SessionState:
        return SessionState(
            session_id=self.session_id,
            submission_id=self._latest_id,
            stage=self._stage,
            stage_label=STAGE_LABELS.get(self._stage),
            loading=self._latest_id > 0 and self._stage not in _TERMINAL,
            result=self._result,
            error=self._error,
        )


class SessionRegistry:
    """Trackers keyed by session id, least recently used evicted past ``max_sessions``."""

    def __init__(self, max_sessions: int = 1000):
        self.max_sessions = max_sessions
        self._trackers: "OrderedDict[str, SubmissionTracker]" = OrderedDict()

    def tracker(self, session_id: str) -> SubmissionTracker:
        tracker = self._trackers.get(session_id)
        if tracker is None:
            tracker = SubmissionTracker(session_id)
            self._trackers[session_id] = tracker
        self._trackers.move_to_end(session_id)
        while len(self._trackers) > self.max_sessions:
            evicted, _ = self._trackers.popitem(last=False)
            logger.info("Evicted idle session %s", evicted)
        return tracker

    def get(self, session_id: str) -> Optional[SubmissionTracker]:
        return self._trackers.get(session_id)

    def __len__(self) -> int:
        return len(self._trackers)
