"""
detection_agent.py — Stage 1: turn a media file into raw per-unit scores.

  Video:
    1. Decode ordered frames.
    2. Keep every Nth frame (settings.frame_sample_stride, default 5).
    3. Score the sampled frames in parallel (asyncio.to_thread per frame);
       asyncio.gather returns them in frame order regardless of which
       finishes first, which the recency weighting downstream depends on.
    4. Run the compression, lip-sync and GAN detectors over the sampled set,
       in a worker thread so slow models never block the event loop.

  Audio:
    1. Decode ordered cepstral feature windows.
    2. Score each window.
    3. Run the frequency-anomaly detector over all windows.

Decoding failures surface as MediaUnreadable; nothing here substitutes a
default result.
"""

import asyncio
import logging
import time
from typing import Optional, Sequence

from verisight.ai.strategies import DetectionStrategies, Frame, Scorer, Unit, mock_strategies
from verisight.core.config import settings
from verisight.models.analysis import AnalysisContext, DetectionFeatures, DetectionResult

logger = logging.getLogger(__name__)

# Population variance above this means the frame scores jump around more than
# a single consistent source would produce.
_TEMPORAL_VARIANCE_LIMIT = 0.05


def _clamp(v: float) -> float:
    return max(0.0, min(1.0, float(v)))


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.perf_counter() - start) * 1000))


def sample_frames(frames: Sequence[Frame], stride: int) -> list[Frame]:
    """Frames at indices 0, stride, 2*stride, ..."""
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")
    return list(frames[::stride])


def check_temporal_consistency(scores: Sequence[float]) -> bool:
    """True when the frame scores vary enough to suggest splicing."""
    if len(scores) < 2:
        return False
    mean = sum(scores) / len(scores)
    variance = sum((s - mean) ** 2 for s in scores) / len(scores)
    return variance > _TEMPORAL_VARIANCE_LIMIT


class DetectionAgent:
    """
    Runs the detection strategies over one AnalysisContext.

    Usage:
        agent = DetectionAgent()                 # mock strategies
        agent = DetectionAgent(my_strategies)    # real model backend
        result = await agent.detect(context)
    """

    name = "Detection Agent"

    def __init__(
        self,
        strategies: Optional[DetectionStrategies] = None,
        sample_stride: Optional[int] = None,
    ):
        self.strategies = strategies or mock_strategies()
        self.sample_stride = settings.frame_sample_stride if sample_stride is None else sample_stride
        if self.sample_stride < 1:
            raise ValueError(f"stride must be >= 1, got {self.sample_stride}")
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ── Model loading ─────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Load scorer/detector resources. Safe to call any number of times."""
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            logger.info("Loading detection models…")
            await asyncio.to_thread(self.strategies.load)
            self._initialized = True
            logger.info("Detection models loaded.")

    # ── Public API ────────────────────────────────────────────────────────────

    async def detect(self, context: AnalysisContext) -> DetectionResult:
        if not self._initialized:
            await self.initialize()

        if context.media_type == "video":
            return await self._detect_video(context)
        return await self._detect_audio(context)

    # ── Video ─────────────────────────────────────────────────────────────────

    async def _score_one(self, scorer: Scorer, unit: Unit) -> float:
        return _clamp(await asyncio.to_thread(scorer.score, unit))

    def _video_features(self, sampled: Sequence[Frame]) -> DetectionFeatures:
        # One worker thread, fixed order: seeded mock detectors share an rng.
        s = self.strategies
        return DetectionFeatures(
            lip_sync_mismatch=s.lip_sync_detector.detect(sampled),
            gan_artifacts=s.gan_detector.detect(sampled),
            compression_anomalies=s.compression_detector.detect(sampled),
        )

    async def _detect_video(self, context: AnalysisContext) -> DetectionResult:
        start = time.perf_counter()
        s = self.strategies

        frames = await asyncio.to_thread(s.decoder.decode_frames, context)
        sampled = sample_frames(frames, self.sample_stride)
        logger.debug(
            "Decoded %d frames from %s, scoring %d (stride=%d)",
            len(frames), context.media_reference, len(sampled), self.sample_stride,
        )

        frame_scores = list(
            await asyncio.gather(*(self._score_one(s.video_scorer, f) for f in sampled))
        )

        if check_temporal_consistency(frame_scores):
            logger.info("Frame scores for %s are temporally inconsistent", context.media_reference)

        features = await asyncio.to_thread(self._video_features, sampled)

        return DetectionResult(
            media_type="video",
            frame_count=len(frames),
            inference_time_ms=_elapsed_ms(start),
            raw_scores=frame_scores,
            features=features,
        )

    # ── Audio ─────────────────────────────────────────────────────────────────

    def _score_windows(self, windows: Sequence[Unit]) -> list[float]:
        scorer = self.strategies.audio_scorer
        return [_clamp(scorer.score(w)) for w in windows]

    async def _detect_audio(self, context: AnalysisContext) -> DetectionResult:
        start = time.perf_counter()
        s = self.strategies

        windows = await asyncio.to_thread(s.decoder.decode_windows, context)
        logger.debug("Decoded %d feature windows from %s", len(windows), context.media_reference)

        audio_scores = await asyncio.to_thread(self._score_windows, windows)
        frequency = await asyncio.to_thread(s.frequency_detector.detect, windows)
        features = DetectionFeatures(frequency_anomalies=frequency)

        return DetectionResult(
            media_type="audio",
            sample_count=len(windows),
            inference_time_ms=_elapsed_ms(start),
            raw_scores=audio_scores,
            features=features,
        )
