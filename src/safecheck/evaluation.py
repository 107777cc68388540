"""Offline evaluation of the scorer against labelled synthetic data."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sklearn.metrics import accuracy_score, confusion_matrix, precision_score, recall_score

from .dataset import render_email
from .types import DetectionQuality, ScoreResult, SyntheticRecord

if TYPE_CHECKING:
    from .pipeline import TriagePipeline

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationReport:
    """Detection quality of the threat verdicts against ground-truth labels."""

    total: int
    true_positives: int
    false_positives: int
    true_negatives: int
    false_negatives: int
    precision: float
    recall: float
    false_positive_rate: float
    accuracy: float

    @property
    def quality(self) -> DetectionQuality:
        return DetectionQuality(
            precision=self.precision,
            recall=self.recall,
            false_positive_rate=self.false_positive_rate,
        )


def evaluate_results(labels: Sequence[int], results: Sequence[ScoreResult]) -> EvaluationReport:
    """Compare threat verdicts (fraud or phishing) with 0/1 labels."""

    if len(labels) != len(results):
        raise ValueError("labels and results must have the same length")
    predicted = [1 if result.verdict.is_threat else 0 for result in results]
    if not labels:
        return EvaluationReport(0, 0, 0, 0, 0, 0.0, 0.0, 0.0, 0.0)
    matrix = confusion_matrix(labels, predicted, labels=[0, 1])
    tn, fp, fn, tp = (int(value) for value in matrix.ravel())
    negatives = tn + fp
    return EvaluationReport(
        total=len(labels),
        true_positives=tp,
        false_positives=fp,
        true_negatives=tn,
        false_negatives=fn,
        precision=float(precision_score(labels, predicted, zero_division=0)),
        recall=float(recall_score(labels, predicted, zero_division=0)),
        false_positive_rate=fp / negatives if negatives else 0.0,
        accuracy=float(accuracy_score(labels, predicted)),
    )


def evaluate_dataset(
    records: Sequence[SyntheticRecord],
    pipeline: TriagePipeline,
) -> EvaluationReport:
    """Render each record as mail, triage it, and score the verdicts."""

    results = [
        pipeline.extract_and_score(render_email(record, index=idx), record_history=False)
        for idx, record in enumerate(records)
    ]
    report = evaluate_results([record.label for record in records], results)
    LOGGER.info(
        "Evaluated %s records: precision=%.3f recall=%.3f fpr=%.3f",
        report.total,
        report.precision,
        report.recall,
        report.false_positive_rate,
    )
    return report


__all__ = ["EvaluationReport", "evaluate_dataset", "evaluate_results"]
