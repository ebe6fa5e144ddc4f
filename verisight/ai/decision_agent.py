"""
decision_agent.py — Stage 2: aggregate raw scores into a verdict.

Steps, in order (DecisionAgent.decide):
  1. aggregate_scores       recency-weighted mean of the raw scores
  2. compute_feature_weight multiplicative penalty for each anomaly flag
  3. compute_authenticity   (1 - aggregated * weight) as a clamped percentage
  4. deepfake probability   100 - authenticity, never computed separately
  5. classify               REAL / FAKE / UNCERTAIN
  6. determine_risk_level   LOW / MEDIUM / HIGH
  7. compute_confidence     score consistency + distance from the 0.5 boundary

Every function is pure and total: an empty score list is a valid input
(aggregated 0.5, confidence 0), not an error.

TESTING
────────
    pytest tests/test_decision_agent.py -v
"""

from __future__ import annotations

import logging
import time
from typing import Sequence

from verisight.models.analysis import (
    Classification,
    DecisionResult,
    DetectionFeatures,
    DetectionResult,
    RiskLevel,
)

logger = logging.getLogger(__name__)

# ── Aggregation ───────────────────────────────────────────────────────────────

_EMPTY_AGGREGATE   = 0.5    # no evidence either way
_RECENCY_BOOST     = 0.5    # last unit weighs up to 1.5x the first
_AVERAGE_WEIGHT    = 1.25   # fixed divisor per unit, not the true weight sum

# ── Feature multipliers ───────────────────────────────────────────────────────

_FEATURE_MULTIPLIERS = (
    ("lip_sync_mismatch",     1.30),
    ("gan_artifacts",         1.25),
    ("compression_anomalies", 1.15),
    ("frequency_anomalies",   1.20),
)
_MAX_FEATURE_WEIGHT = 2.0

# ── Thresholds (percent) ──────────────────────────────────────────────────────

_REAL_THRESHOLD      = 75.0
_FAKE_THRESHOLD      = 75.0
_HIGH_RISK_DEEPFAKE  = 60.0
_HIGH_RISK_INDICATORS = 2
_MEDIUM_RISK_DEEPFAKE = 40.0
_MEDIUM_RISK_INDICATORS = 1


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


# ── Pure scoring functions ────────────────────────────────────────────────────

def aggregate_scores(scores: Sequence[float]) -> float:
    """
    Recency-weighted mean. Unit i of n gets weight 1 + (i/n)*0.5 and the
    weighted sum is divided by n*1.25.
    """
    n = len(scores)
    if n == 0:
        return _EMPTY_AGGREGATE
    weighted = sum(score * (1 + (i / n) * _RECENCY_BOOST) for i, score in enumerate(scores))
    return weighted / (n * _AVERAGE_WEIGHT)


def compute_feature_weight(features: DetectionFeatures) -> float:
    weight = 1.0
    for attr, multiplier in _FEATURE_MULTIPLIERS:
        if getattr(features, attr):
            weight *= multiplier
    return min(weight, _MAX_FEATURE_WEIGHT)


def compute_authenticity(aggregated: float, feature_weight: float) -> float:
    """Authenticity percentage in [0, 100]; higher = more likely genuine."""
    adjusted = aggregated * feature_weight
    return _clamp((1 - adjusted) * 100, 0.0, 100.0)


def classify(authenticity: float, deepfake_probability: float) -> Classification:
    if authenticity >= _REAL_THRESHOLD:
        return "REAL"
    if deepfake_probability >= _FAKE_THRESHOLD:
        return "FAKE"
    return "UNCERTAIN"


def determine_risk_level(deepfake_probability: float, strong_indicators: int) -> RiskLevel:
    if deepfake_probability >= _HIGH_RISK_DEEPFAKE and strong_indicators >= _HIGH_RISK_INDICATORS:
        return "HIGH"
    if deepfake_probability >= _MEDIUM_RISK_DEEPFAKE or strong_indicators >= _MEDIUM_RISK_INDICATORS:
        return "MEDIUM"
    return "LOW"


def compute_confidence(aggregated: float, scores: Sequence[float]) -> float:
    """
    Confidence percentage. Variance is taken around the aggregated score,
    not the plain mean.
    """
    if not scores:
        return 0.0
    variance = sum((s - aggregated) ** 2 for s in scores) / len(scores)
    consistency = _clamp(1 - variance, 0.0, 1.0)
    distance_from_boundary = abs(aggregated - 0.5) * 2
    return _clamp((consistency * 0.5 + distance_from_boundary * 0.5) * 100, 0.0, 100.0)


# ── Agent ─────────────────────────────────────────────────────────────────────

class DecisionAgent:
    name = "Decision Agent"

    def decide(self, detection: DetectionResult) -> DecisionResult:
        start = time.perf_counter()

        aggregated = aggregate_scores(detection.raw_scores)
        weight = compute_feature_weight(detection.features)
        authenticity = compute_authenticity(aggregated, weight)
        deepfake_probability = 100 - authenticity
        classification = classify(authenticity, deepfake_probability)
        risk_level = determine_risk_level(
            deepfake_probability, detection.features.strong_indicators()
        )
        confidence = compute_confidence(aggregated, detection.raw_scores)

        logger.debug(
            "aggregated=%.4f weight=%.3f authenticity=%.2f confidence=%.2f",
            aggregated, weight, authenticity, confidence,
        )

        return DecisionResult(
            authenticity=authenticity,
            classification=classification,
            risk_level=risk_level,
            confidence=confidence,
            deepfake_probability=deepfake_probability,
            processing_time_ms=max(0, int((time.perf_counter() - start) * 1000)),
        )
