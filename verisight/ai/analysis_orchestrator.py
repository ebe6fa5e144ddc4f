"""
analysis_orchestrator.py — Runs Detection → Decision → Explanation for one file.

  Phase          progress   stage
  initializing        0     model resources loaded once (idempotent)
  detection          10     DetectionAgent.detect
  decision           60     DecisionAgent.decide
  explanation        80     CognitiveAssistanceAgent.explain
  complete          100     AnalysisResult assembled

Each stage starts only after the previous one has returned. A stage that
raises aborts the request with PipelineFailure(stage, cause); no partial
AnalysisResult is ever returned.

The observer is how a presentation layer (progress bar, haptics) follows
along. It is called synchronously at each phase boundary; if it raises, the
error is logged and the analysis carries on.
"""

import hashlib
import logging
import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from verisight.ai.cognitive_agent import CognitiveAssistanceAgent
from verisight.ai.decision_agent import DecisionAgent
from verisight.ai.detection_agent import DetectionAgent
from verisight.core.errors import PipelineFailure
from verisight.models.analysis import AnalysisContext, AnalysisResult

logger = logging.getLogger(__name__)


class AnalysisPhase(str, Enum):
    INITIALIZING = "initializing"
    DETECTION = "detection"
    DECISION = "decision"
    EXPLANATION = "explanation"
    COMPLETE = "complete"
    FAILED = "failed"


_PROGRESS = {
    AnalysisPhase.INITIALIZING: 0,
    AnalysisPhase.DETECTION: 10,
    AnalysisPhase.DECISION: 60,
    AnalysisPhase.EXPLANATION: 80,
    AnalysisPhase.COMPLETE: 100,
}

PipelineObserver = Callable[[AnalysisPhase, int], None]


def make_analysis_id(file_name: str) -> str:
    """SHA-256 hex digest over file name, wall-clock millis and a random nonce."""
    seed = f"{file_name}-{int(time.time() * 1000)}-{secrets.token_hex(16)}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


class AnalysisOrchestrator:
    """
    Usage:
        orchestrator = AnalysisOrchestrator()
        await orchestrator.initialize()
        result = await orchestrator.run_analysis(context, "clip.mp4", 1_048_576)
    """

    def __init__(
        self,
        detection_agent: Optional[DetectionAgent] = None,
        decision_agent: Optional[DecisionAgent] = None,
        cognitive_agent: Optional[CognitiveAssistanceAgent] = None,
        observer: Optional[PipelineObserver] = None,
    ):
        self.detection_agent = detection_agent or DetectionAgent()
        self.decision_agent = decision_agent or DecisionAgent()
        self.cognitive_agent = cognitive_agent or CognitiveAssistanceAgent()
        self.observer = observer

    async def initialize(self) -> None:
        logger.info("Initializing agents…")
        await self.detection_agent.initialize()
        logger.info("Agents initialized")

    # ── Observer ──────────────────────────────────────────────────────────────

    def _notify(self, observer: Optional[PipelineObserver], phase: AnalysisPhase, progress: int) -> None:
        if observer is None:
            return
        try:
            observer(phase, progress)
        except Exception as exc:
            logger.warning("Pipeline observer raised during %s: %s", phase.value, exc)

    # ── Pipeline ──────────────────────────────────────────────────────────────

    async def run_analysis(
        self,
        context: AnalysisContext,
        file_name: str,
        file_size_bytes: int,
        observer: Optional[PipelineObserver] = None,
    ) -> AnalysisResult:
        observer = observer or self.observer
        analysis_id = make_analysis_id(file_name)
        stage = AnalysisPhase.INITIALIZING
        progress = _PROGRESS[stage]

        try:
            self._notify(observer, stage, progress)
            await self.detection_agent.initialize()

            stage = AnalysisPhase.DETECTION
            progress = _PROGRESS[stage]
            self._notify(observer, stage, progress)
            logger.info("[%s] Starting %s (%s)", analysis_id[:12], self.detection_agent.name, file_name)
            detection = await self.detection_agent.detect(context)
            logger.debug("[%s] Detection complete: %s", analysis_id[:12], detection)

            stage = AnalysisPhase.DECISION
            progress = _PROGRESS[stage]
            self._notify(observer, stage, progress)
            logger.info("[%s] Starting %s", analysis_id[:12], self.decision_agent.name)
            decision = self.decision_agent.decide(detection)
            logger.debug("[%s] Decision complete: %s", analysis_id[:12], decision)

            stage = AnalysisPhase.EXPLANATION
            progress = _PROGRESS[stage]
            self._notify(observer, stage, progress)
            logger.info("[%s] Starting %s", analysis_id[:12], self.cognitive_agent.name)
            explanation = self.cognitive_agent.explain(detection, decision)
        except Exception as exc:
            logger.error("[%s] Analysis failed in %s stage: %s", analysis_id[:12], stage.value, exc)
            self._notify(observer, AnalysisPhase.FAILED, progress)
            raise PipelineFailure(stage.value, exc) from exc

        result = AnalysisResult(
            id=analysis_id,
            timestamp=datetime.now(tz=timezone.utc),
            media_type=context.media_type,
            file_name=file_name,
            file_size_bytes=file_size_bytes,
            detection=detection,
            decision=decision,
            explanation=explanation,
        )
        self._notify(observer, AnalysisPhase.COMPLETE, _PROGRESS[AnalysisPhase.COMPLETE])
        logger.info(
            "[%s] Analysis complete: %s (authenticity=%.1f%%, risk=%s)",
            analysis_id[:12], decision.classification, decision.authenticity, decision.risk_level,
        )
        return result


# Module-level singleton: imported by routes/analysis.py
analysis_orchestrator = AnalysisOrchestrator()
