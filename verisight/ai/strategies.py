"""
strategies.py — Pluggable pieces of the detection stage.

The detection stage only promises "an ordered [0, 1] score sequence plus a
fixed set of boolean anomaly flags". How the media is decoded, how each unit
is scored and how anomalies are judged are strategies behind three small
interfaces:

  MediaDecoder      media → ordered frames (video) or feature windows (audio)
  Scorer            one frame / window → float in [0, 1]
  AnomalyDetector   the whole sampled unit set → bool

The mock implementations below draw from an injectable random.Random so the
pipeline is reproducible in tests. A real model backend replaces them by
passing its own DetectionStrategies to DetectionAgent; the decision and
explanation stages never see the difference.
"""

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Union

from verisight.core.config import settings
from verisight.core.errors import MediaUnreadable
from verisight.models.analysis import AnalysisContext

logger = logging.getLogger(__name__)

_FRAME_INTERVAL_MS = 33  # ~30 fps


# ── Units ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Frame:
    index: int
    timestamp_ms: int
    data: bytes = b""


@dataclass(frozen=True)
class FeatureWindow:
    """One fixed-length window of cepstral coefficients."""
    index: int
    timestamp_ms: float
    coefficients: tuple[float, ...] = field(default_factory=tuple)


Unit = Union[Frame, FeatureWindow]


# ── Interfaces ────────────────────────────────────────────────────────────────

class MediaDecoder(ABC):
    """Turns an AnalysisContext into ordered units. Raises MediaUnreadable."""

    @abstractmethod
    def decode_frames(self, context: AnalysisContext) -> list[Frame]:
        ...

    @abstractmethod
    def decode_windows(self, context: AnalysisContext) -> list[FeatureWindow]:
        ...


class Scorer(ABC):
    """Per-unit manipulation score: 0.0 = genuine, 1.0 = manipulated."""

    def load(self) -> None:
        """Load model weights. Called once, from a worker thread."""

    @abstractmethod
    def score(self, unit: Unit) -> float:
        ...


class AnomalyDetector(ABC):
    """Independent yes/no judgement over the whole unit set."""

    def load(self) -> None:
        """Load model weights. Called once, from a worker thread."""

    @abstractmethod
    def detect(self, units: Sequence[Unit]) -> bool:
        ...


# ── Mock implementations ──────────────────────────────────────────────────────

class MockMediaDecoder(MediaDecoder):
    """
    Checks that the media is actually readable, then emits placeholder units.

    Bytes handed over in the context take precedence over the reference; an
    empty payload or a path that cannot be opened raises MediaUnreadable.
    """

    def __init__(
        self,
        frame_count: Optional[int] = None,
        window_count: Optional[int] = None,
        coefficients: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.frame_count = settings.mock_frame_count if frame_count is None else frame_count
        self.window_count = settings.mock_window_count if window_count is None else window_count
        self.coefficients = settings.mfcc_coefficients if coefficients is None else coefficients
        self._rng = rng or random.Random()

    def _ensure_readable(self, context: AnalysisContext) -> None:
        if context.media_data is not None:
            if not context.media_data:
                raise MediaUnreadable(context.media_reference, "is empty")
            return

        path = Path(context.media_reference)
        try:
            with path.open("rb") as fh:
                head = fh.read(1)
        except OSError as exc:
            raise MediaUnreadable(context.media_reference, f"cannot be opened ({exc.strerror or exc})") from exc
        if not head:
            raise MediaUnreadable(context.media_reference, "is empty")

    def decode_frames(self, context: AnalysisContext) -> list[Frame]:
        self._ensure_readable(context)
        return [Frame(index=i, timestamp_ms=i * _FRAME_INTERVAL_MS) for i in range(self.frame_count)]

    def decode_windows(self, context: AnalysisContext) -> list[FeatureWindow]:
        self._ensure_readable(context)
        return [
            FeatureWindow(
                index=i,
                timestamp_ms=self._rng.random() * 10_000,
                coefficients=tuple(self._rng.random() for _ in range(self.coefficients)),
            )
            for i in range(self.window_count)
        ]


class RandomScorer(Scorer):
    """Uniform score in [0, ceiling). Low ceilings mean 'mostly genuine'."""

    def __init__(self, ceiling: float, seed: Optional[int] = None):
        self.ceiling = ceiling
        self.seed = seed
        self._rng = random.Random(seed)

    def score(self, unit: Unit) -> float:
        if self.seed is None:
            return self._rng.random() * self.ceiling
        # Seeded scores depend on the unit only, not on which worker thread draws first.
        return random.Random(self.seed * 1_000_003 + unit.index).random() * self.ceiling


class RandomAnomalyDetector(AnomalyDetector):
    """Fires when a uniform draw exceeds threshold."""

    def __init__(self, threshold: float, rng: Optional[random.Random] = None):
        self.threshold = threshold
        self._rng = rng or random.Random()

    def detect(self, units: Sequence[Unit]) -> bool:
        return self._rng.random() > self.threshold


# ── Bundle ────────────────────────────────────────────────────────────────────

@dataclass
class DetectionStrategies:
    decoder: MediaDecoder
    video_scorer: Scorer
    audio_scorer: Scorer
    compression_detector: AnomalyDetector
    lip_sync_detector: AnomalyDetector
    gan_detector: AnomalyDetector
    frequency_detector: AnomalyDetector

    def load(self) -> None:
        """Load every scorer/detector once, even if one object fills several slots."""
        seen: set[int] = set()
        for component in (
            self.video_scorer,
            self.audio_scorer,
            self.compression_detector,
            self.lip_sync_detector,
            self.gan_detector,
            self.frequency_detector,
        ):
            if id(component) in seen:
                continue
            seen.add(id(component))
            component.load()


def mock_strategies(seed: Optional[int] = None) -> DetectionStrategies:
    """Randomised stand-ins: video scores < 0.3, audio scores < 0.4."""
    if seed is None:
        seed = settings.mock_seed
    rng = random.Random(seed)
    logger.debug("Building mock detection strategies (seed=%s)", seed)
    return DetectionStrategies(
        decoder=MockMediaDecoder(rng=rng),
        video_scorer=RandomScorer(0.3, seed),
        audio_scorer=RandomScorer(0.4, None if seed is None else seed + 1),
        compression_detector=RandomAnomalyDetector(0.7, rng),
        lip_sync_detector=RandomAnomalyDetector(0.8, rng),
        gan_detector=RandomAnomalyDetector(0.75, rng),
        frequency_detector=RandomAnomalyDetector(0.7, rng),
    )
