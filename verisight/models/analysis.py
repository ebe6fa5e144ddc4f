"""
analysis.py — Pydantic models for the three-stage authenticity pipeline.

Flow of records:
  AnalysisContext      → DetectionAgent.detect()
  DetectionResult      → DecisionAgent.decide()
  DecisionResult       → CognitiveAssistanceAgent.explain()
  CognitiveExplanation → assembled into AnalysisResult by the orchestrator

Every record is frozen once built. AnalysisResult round-trips through
model_dump_json() / model_validate_json() without loss, which is what the
history store relies on.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MediaType = Literal["video", "audio"]
Classification = Literal["REAL", "FAKE", "UNCERTAIN"]
RiskLevel = Literal["LOW", "MEDIUM", "HIGH"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Input ─────────────────────────────────────────────────────────────────────

class AnalysisContext(_Frozen):
    """One analysis request as handed to the detection stage."""

    media_type: MediaType
    media_reference: str                 # file path or other locator
    media_data: Optional[bytes] = None   # raw bytes, when the caller already has them


# ── Detection ─────────────────────────────────────────────────────────────────

class DetectionFeatures(_Frozen):
    """
    Boolean anomaly flags. Video only sets the first three, audio only
    frequency_anomalies; an unset flag (None) counts as False.
    """

    lip_sync_mismatch:     Optional[bool] = None
    gan_artifacts:         Optional[bool] = None
    compression_anomalies: Optional[bool] = None
    frequency_anomalies:   Optional[bool] = None

    def strong_indicators(self) -> int:
        """Number of flags that are set and true."""
        return sum(
            bool(flag)
            for flag in (
                self.lip_sync_mismatch,
                self.gan_artifacts,
                self.compression_anomalies,
                self.frequency_anomalies,
            )
        )


class DetectionResult(_Frozen):
    media_type: MediaType
    frame_count:  Optional[int] = Field(default=None, ge=0)  # decoded frames (video)
    sample_count: Optional[int] = Field(default=None, ge=0)  # feature windows (audio)
    inference_time_ms: int = Field(ge=0)
    raw_scores: list[float] = Field(default_factory=list)    # temporal order, each in [0, 1]
    features: DetectionFeatures = Field(default_factory=DetectionFeatures)


# ── Decision ──────────────────────────────────────────────────────────────────

class DecisionResult(_Frozen):
    authenticity:         float = Field(ge=0.0, le=100.0)
    classification:       Classification
    risk_level:           RiskLevel
    confidence:           float = Field(ge=0.0, le=100.0)
    deepfake_probability: float = Field(ge=0.0, le=100.0)  # always 100 - authenticity
    processing_time_ms:   int = Field(ge=0)


# ── Explanation ───────────────────────────────────────────────────────────────

class CognitiveExplanation(_Frozen):
    summary: str
    key_findings:    list[str] = Field(default_factory=list)
    artifacts:       list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# ── Combined record ───────────────────────────────────────────────────────────

class AnalysisResult(_Frozen):
    """Final record produced once per analysis and stored in history."""

    id: str
    timestamp: datetime
    media_type: MediaType
    file_name: str
    file_size_bytes: int = Field(ge=0)
    detection: DetectionResult
    decision: DecisionResult
    explanation: CognitiveExplanation


# ── API request / response bodies ─────────────────────────────────────────────

class AnalysisRequest(BaseModel):
    """
    Body for POST /api/v1/analysis.

    Either media_reference (a path the server can read) or media_b64 must be
    supplied; media_b64 wins when both are present.
    """

    media_type: MediaType
    file_name: str = Field(..., min_length=1)
    file_size_bytes: int = Field(default=0, ge=0)
    media_reference: Optional[str] = None
    media_b64: Optional[str] = None


class HistoryClearedResponse(BaseModel):
    cleared: bool = True
