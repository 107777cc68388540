from __future__ import annotations

import numpy as np
import pytest

from safecheck.config import GeneratorConfig
from safecheck.generator import (
    DEFAULT_POOLS,
    BackgroundGeneration,
    DatasetGenerator,
    DatasetReady,
    GenerationProgress,
    TemplatePools,
    plan_generation,
    synthesize_record,
)


@pytest.mark.parametrize(
    "total, ratio, expected",
    [
        (1000, 0.25, (1000, 0.25, 250, 750)),
        (50, 0.25, (100, 0.25, 25, 75)),
        (1000, 0.9, (1000, 0.50, 500, 500)),
        (1000, 0.01, (1000, 0.10, 100, 900)),
        (150, 0.15, (150, 0.15, 23, 127)),
    ],
)
def test_plan_generation_clamps_and_rounds(total: int, ratio: float, expected: tuple) -> None:
    plan = plan_generation(total, ratio)

    assert (plan.total_records, plan.fraud_ratio, plan.fraud_count, plan.legit_count) == expected


def test_generate_exact_class_counts() -> None:
    ready = DatasetGenerator().generate(1000, 0.25, seed=7)

    labels = [record.label for record in ready.records]
    assert len(labels) == 1000
    assert labels.count(1) == 250
    assert labels.count(0) == 750
    assert dict(ready.label_counts) == {0: 750, 1: 250}


def test_generated_records_are_shuffled() -> None:
    ready = DatasetGenerator().generate(1000, 0.25, seed=11)

    first_half = [record.label for record in ready.records[:500]]
    assert 0 in first_half[:250]
    assert set(first_half) == {0, 1}


def test_progress_is_reported_after_every_batch() -> None:
    seen: list[GenerationProgress] = []

    DatasetGenerator().generate(200, 0.25, seed=1, on_progress=seen.append)

    assert [event.processed for event in seen] == [50, 100, 150, 200]
    assert seen[-1].percent == pytest.approx(100.0)


def test_batch_size_is_configurable() -> None:
    generator = DatasetGenerator(GeneratorConfig(batch_size=30, shuffle_interval=60))
    seen: list[GenerationProgress] = []

    generator.generate(100, 0.2, seed=3, on_progress=seen.append)

    assert [event.processed for event in seen] == [30, 60, 90, 100]


def test_same_seed_reproduces_the_dataset() -> None:
    generator = DatasetGenerator()

    first = generator.generate(300, 0.3, seed=42)
    second = generator.generate(300, 0.3, seed=42)

    assert first.records == second.records


def test_run_is_restartable() -> None:
    run = DatasetGenerator().run(200, 0.25, seed=5)

    first = list(run)
    second = list(run)

    assert isinstance(first[-1], DatasetReady)
    assert first == second


def test_cancel_stops_before_the_next_batch() -> None:
    run = DatasetGenerator().run(1000, 0.25, seed=9)
    events = []

    for event in run:
        events.append(event)
        if isinstance(event, GenerationProgress) and event.processed == 100:
            run.cancel()

    assert run.cancelled
    assert [event.processed for event in events] == [50, 100]
    assert not any(isinstance(event, DatasetReady) for event in events)


def test_record_ranges_per_class() -> None:
    rng = np.random.default_rng(123)

    fraud = [synthesize_record(rng, True) for _ in range(300)]
    legit = [synthesize_record(rng, False) for _ in range(300)]

    for record in fraud:
        assert record.label == 1
        assert 0.0 <= record.sender_reputation_score <= 40.0
        assert 0.5 <= record.time_anomaly_score <= 1.0
        assert record.attachment_type in {".zip", ".pdf"}
        assert record.from_domain in DEFAULT_POOLS.suspicious_domains
        assert record.domain_mismatch_flag == (record.from_domain != record.return_path_domain)
        assert record.link_count == 0 or 2 <= record.link_count <= 6
        assert record.has_links == (record.link_count > 0)
        assert record.urgency_keywords <= set(DEFAULT_POOLS.urgency_phrases)
    for record in legit:
        assert record.label == 0
        assert 60.0 <= record.sender_reputation_score <= 100.0
        assert 0.0 <= record.time_anomaly_score <= 0.3
        assert record.attachment_type == ".pdf"
        assert record.return_path_domain == record.from_domain
        assert record.domain_mismatch_flag is False
        assert record.urgency_keywords == frozenset()
        assert record.link_count in {0, 1, 2}
        assert record.has_links == (record.link_count > 0)

    mismatch_rate = sum(record.domain_mismatch_flag for record in fraud) / len(fraud)
    assert 0.55 < mismatch_rate < 0.85


def test_template_pools_need_two_suspicious_domains() -> None:
    with pytest.raises(ValueError, match="two distinct suspicious domains"):
        TemplatePools(
            legit_subjects=("a",),
            fraud_subjects=("b",),
            legit_bodies=("c",),
            fraud_bodies=("d",),
            legit_domains=("ok.com",),
            suspicious_domains=("bad.com",),
            urgency_phrases=("URGENT",),
        )


def test_background_generation_delivers_dataset() -> None:
    progress: list[GenerationProgress] = []
    ready_events: list[DatasetReady] = []
    run = DatasetGenerator().run(200, 0.25, seed=2)
    background = BackgroundGeneration(run, on_progress=progress.append, on_ready=ready_events.append)

    background.start()
    ready = background.wait(timeout=30)

    assert ready is not None
    assert len(ready.records) == 200
    assert ready_events == [ready]
    assert progress[-1].processed == 200
    assert background.is_running is False
    with pytest.raises(RuntimeError):
        background.start()


def test_background_generation_cancel_discards_records() -> None:
    run = DatasetGenerator(GeneratorConfig(batch_size=1, shuffle_interval=200)).run(
        100_000, 0.25, seed=4
    )
    background = BackgroundGeneration(run, on_progress=lambda event: background.cancel())

    background.start()
    result = background.wait(timeout=30)

    assert background.cancelled
    assert result is None
    assert background.result is None


def test_background_generation_reraises_worker_errors() -> None:
    def _explode(event: GenerationProgress) -> None:
        raise RuntimeError("boom")

    background = BackgroundGeneration(DatasetGenerator().run(100, 0.25, seed=1), on_progress=_explode)

    background.start()
    with pytest.raises(RuntimeError, match="boom"):
        background.wait(timeout=30)
