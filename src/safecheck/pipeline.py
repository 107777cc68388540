"""Triage pipeline tying together extraction, scoring, metrics and generation."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from .config import Config, ExtractionConfig
from .extractor.features import extract_features
from .generator import DatasetGenerator, GenerationRun
from .mailsource import MailSource, coerce_record
from .metrics import DEFAULT_LATENCY_TARGET_MS, ResultWindow, compute_metrics
from .scorer import ThreatScorer
from .types import DetectionQuality, EmailRecord, ExtractedFeatures, RunningMetrics, ScoreResult

LOGGER = logging.getLogger(__name__)

FeatureExtractor = Callable[[EmailRecord, ExtractionConfig], ExtractedFeatures]


class TriagePipeline:
    """Scores emails one at a time and keeps a bounded history of results.

    Each pipeline owns its own :class:`ResultWindow`; independent pipelines
    never share results.
    """

    def __init__(
        self,
        *,
        scorer: ThreatScorer | None = None,
        extraction: ExtractionConfig | None = None,
        window: ResultWindow | None = None,
        generator: DatasetGenerator | None = None,
        latency_target_ms: float = DEFAULT_LATENCY_TARGET_MS,
        feature_extractor: FeatureExtractor = extract_features,
    ) -> None:
        self._scorer = scorer or ThreatScorer()
        self._extraction = extraction or ExtractionConfig()
        self._window = window if window is not None else ResultWindow()
        self._generator = generator or DatasetGenerator()
        self._latency_target_ms = latency_target_ms
        self._feature_extractor = feature_extractor

    @classmethod
    def from_config(cls, config: Config) -> TriagePipeline:
        return cls(
            scorer=ThreatScorer(config.scoring),
            extraction=config.extraction,
            window=ResultWindow(config.history.size),
            generator=DatasetGenerator(config.generator),
            latency_target_ms=config.history.latency_target_ms,
        )

    @property
    def window(self) -> ResultWindow:
        return self._window

    @property
    def scorer(self) -> ThreatScorer:
        return self._scorer

    def extract_and_score(self, raw_email: Any, *, record_history: bool = True) -> ScoreResult:
        """Score a single email synchronously; always returns a result."""

        started = time.perf_counter()
        record = coerce_record(raw_email)
        try:
            features = self._feature_extractor(record, self._extraction)
        except Exception:
            LOGGER.exception("Feature extraction failed for %s", record.message_id or "<no id>")
            features = ExtractedFeatures()
        result = self._scorer.score(
            features,
            started=started,
            message_id=record.message_id,
            sender=record.sender,
            subject=record.subject,
        )
        if record_history:
            self._window.append(result)
        self._log_result(result)
        return result

    def triage_batch(self, source: MailSource, limit: int | None = None) -> list[ScoreResult]:
        """Fetch from ``source`` and score every record.

        ``SourceUnavailable`` from the source is propagated unchanged.
        """

        records = source.fetch(limit)
        LOGGER.info("Triaging %s message(s)", len(records))
        return [self.extract_and_score(record) for record in records]

    def compute_metrics(self, quality: DetectionQuality | None = None) -> RunningMetrics:
        return compute_metrics(
            self._window.snapshot(),
            quality=quality,
            latency_target_ms=self._latency_target_ms,
        )

    def generate_dataset(
        self,
        total_records: int = 1000,
        fraud_ratio: float = 0.25,
        *,
        seed: int | None = None,
    ) -> GenerationRun:
        """Return a lazy generation run; iterate it to receive progress events."""

        return self._generator.run(total_records, fraud_ratio, seed=seed)

    def _log_result(self, result: ScoreResult) -> None:
        if result.verdict.is_threat:
            LOGGER.warning(
                "Threat detected (%s, score=%s) from %s: %s",
                result.verdict.value,
                result.threat_score,
                result.sender or "<unknown sender>",
                result.subject,
            )
        else:
            LOGGER.debug(
                "Scored %s as %s (score=%s, %.2f ms)",
                result.message_id or "<no id>",
                result.verdict.value,
                result.threat_score,
                result.latency_ms,
            )


__all__ = ["TriagePipeline"]
