"""
cognitive_agent.py — Stage 3: explain the verdict in plain language.

Pure string templating over the detection and decision records. No new
numbers are computed here beyond formatting.
"""

from verisight.models.analysis import CognitiveExplanation, DecisionResult, DetectionResult

# ── Templates ─────────────────────────────────────────────────────────────────

_SUMMARY = {
    "REAL": (
        "Content appears to be authentic with {authenticity:.0f}% confidence. "
        "No significant deepfake indicators detected."
    ),
    "FAKE": (
        "Content shows strong signs of manipulation. Deepfake probability: "
        "{deepfake:.0f}%. Recommend further verification."
    ),
    "UNCERTAIN": (
        "Analysis is inconclusive. Authenticity score: {authenticity:.0f}%. "
        "Additional context or expert review recommended."
    ),
}

_VIDEO_ARTIFACTS = (
    ("lip_sync_mismatch",     "Lip-sync mismatch detected between audio and visual"),
    ("gan_artifacts",         "GAN-generated artifacts detected (eye blinking, texture anomalies)"),
    ("compression_anomalies", "Unusual compression patterns detected (possible re-encoding)"),
)
_AUDIO_ARTIFACTS = (
    ("frequency_anomalies", "Frequency anomalies detected (synthetic speech characteristics)"),
)
NO_ARTIFACTS = "No significant artifacts detected"

_RECOMMENDATIONS = {
    "REAL": [
        "Content appears authentic. Safe to use.",
        "Archive this verification for audit trail.",
    ],
    "FAKE": [
        "Content is likely manipulated. Do not use or distribute.",
        "Consider reporting to relevant authorities.",
        "Flag for further forensic analysis if needed.",
    ],
    "UNCERTAIN": [
        "Seek additional verification through alternative methods.",
        "Consider expert review or manual inspection.",
        "Use with caution pending further analysis.",
    ],
}

_CONFIDENCE_LEVELS = [
    (90, "Very High"),
    (75, "High"),
    (50, "Medium"),
    (25, "Low"),
]


def confidence_level(confidence: float) -> str:
    for threshold, label in _CONFIDENCE_LEVELS:
        if confidence >= threshold:
            return label
    return "Very Low"


class CognitiveAssistanceAgent:
    name = "Cognitive Assistance Agent"

    def explain(self, detection: DetectionResult, decision: DecisionResult) -> CognitiveExplanation:
        return CognitiveExplanation(
            summary=self.summarize(decision),
            key_findings=self.key_findings(detection, decision),
            artifacts=self.describe_artifacts(detection),
            recommendations=list(_RECOMMENDATIONS[decision.classification]),
        )

    def summarize(self, decision: DecisionResult) -> str:
        return _SUMMARY[decision.classification].format(
            authenticity=decision.authenticity,
            deepfake=100 - decision.authenticity,
        )

    def key_findings(self, detection: DetectionResult, decision: DecisionResult) -> list[str]:
        """Always four lines: throughput, authenticity, confidence, risk."""
        if detection.media_type == "video":
            metrics = f"Analyzed {detection.frame_count or 0} video frames in {detection.inference_time_ms}ms"
        else:
            metrics = f"Analyzed {detection.sample_count or 0} audio samples in {detection.inference_time_ms}ms"

        return [
            metrics,
            f"Authenticity score: {decision.authenticity:.1f}%",
            f"Detection confidence: {confidence_level(decision.confidence)} ({decision.confidence:.0f}%)",
            f"Risk level: {decision.risk_level}",
        ]

    def describe_artifacts(self, detection: DetectionResult) -> list[str]:
        table = _VIDEO_ARTIFACTS if detection.media_type == "video" else _AUDIO_ARTIFACTS
        artifacts = [text for attr, text in table if getattr(detection.features, attr)]
        return artifacts or [NO_ARTIFACTS]
