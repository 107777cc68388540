"""Batch-wise generation of labelled synthetic email records."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Union

import numpy as np

from .config import GeneratorConfig
from .types import SyntheticRecord

LOGGER = logging.getLogger(__name__)

MIN_TOTAL_RECORDS = 100
MIN_FRAUD_RATIO = 0.10
MAX_FRAUD_RATIO = 0.50

FRAUD_MISMATCH_PROBABILITY = 0.7
FRAUD_ZIP_PROBABILITY = 0.4
URGENCY_PHRASE_PROBABILITY = 0.3
LINK_PROBABILITY = 0.7


@dataclass(frozen=True)
class TemplatePools:
    """Text and domain pools that generated records are drawn from."""

    legit_subjects: tuple[str, ...]
    fraud_subjects: tuple[str, ...]
    legit_bodies: tuple[str, ...]
    fraud_bodies: tuple[str, ...]
    legit_domains: tuple[str, ...]
    suspicious_domains: tuple[str, ...]
    urgency_phrases: tuple[str, ...]

    def __post_init__(self) -> None:
        for name in (
            "legit_subjects",
            "fraud_subjects",
            "legit_bodies",
            "fraud_bodies",
            "legit_domains",
            "urgency_phrases",
        ):
            if not getattr(self, name):
                raise ValueError(f"Template pool '{name}' cannot be empty.")
        if len(set(self.suspicious_domains)) < 2:
            raise ValueError("At least two distinct suspicious domains are required.")


DEFAULT_POOLS = TemplatePools(
    legit_subjects=(
        "Q4 Budget Review - Action Items",
        "Weekly Status Update",
        "Meeting Notes - Project Sync",
        "Invoice #12345 for your records",
        "Team Building Event RSVP",
        "Performance Review Schedule",
        "Client Feedback Summary",
        "Holiday Schedule Reminder",
        "IT Maintenance Window Notice",
        "New Policy Documentation",
    ),
    fraud_subjects=(
        "URGENT: Account Suspended - Verify Now!",
        "IMMEDIATE ACTION REQUIRED - Payment Failed",
        "Final Notice: Your account will be deleted",
        "Security Alert: Unusual activity detected",
        "You have won $500,000 - Claim NOW",
        "VERIFY YOUR IDENTITY IMMEDIATELY",
        "Your password expires in 24 hours",
        "Unauthorized login attempt - Action Required",
        "CEO Request: Urgent Wire Transfer Needed",
        "Tax Refund Pending - Confirm Details",
    ),
    legit_bodies=(
        "Hi team, please find attached the quarterly report. Let me know if you have questions.",
        "As discussed in our last meeting, here are the action items for this week.",
        "Thank you for your recent purchase. Your invoice is attached for your records.",
        "This is a reminder about our upcoming team meeting scheduled for Friday.",
        "Please review the attached document and provide your feedback by EOD.",
    ),
    fraud_bodies=(
        "Dear valued customer, your account requires immediate verification. "
        "Click the link below.",
        "We detected suspicious activity on your account. "
        "Verify your identity now to avoid suspension.",
        "Your payment method has been declined. "
        "Update your information immediately to continue service.",
        "As CEO, I need you to process this urgent wire transfer. Keep this confidential.",
        "Congratulations! You have been selected for a special prize. Click here to claim.",
    ),
    legit_domains=("company.com", "corp.net", "business.org", "enterprise.io"),
    suspicious_domains=("c0mpany.com", "corp-secure.net", "busines5.org", "enterprize.io"),
    urgency_phrases=(
        "URGENT",
        "IMMEDIATE",
        "ASAP",
        "Final Notice",
        "Action Required",
        "Verify Now",
        "Suspended",
    ),
)


@dataclass(frozen=True)
class GenerationPlan:
    """Clamped parameters and exact class counts of one generation run."""

    total_records: int
    fraud_ratio: float
    fraud_count: int
    legit_count: int


@dataclass(frozen=True)
class GenerationProgress:
    """Emitted after every batch."""

    processed: int
    total: int

    @property
    def percent(self) -> float:
        return 100.0 * self.processed / self.total if self.total else 100.0


@dataclass(frozen=True)
class DatasetReady:
    """Terminal event carrying the complete record set."""

    records: tuple[SyntheticRecord, ...]
    label_counts: Mapping[int, int]


GenerationEvent = Union[GenerationProgress, DatasetReady]


def plan_generation(total_records: int, fraud_ratio: float) -> GenerationPlan:
    """Clamp out-of-range parameters and fix the per-class counts up front."""

    total = max(MIN_TOTAL_RECORDS, int(total_records))
    ratio = min(MAX_FRAUD_RATIO, max(MIN_FRAUD_RATIO, float(fraud_ratio)))
    if total != total_records:
        LOGGER.warning("total_records=%s raised to the minimum of %s", total_records, total)
    if ratio != fraud_ratio:
        LOGGER.warning(
            "fraud_ratio=%s clamped to %s (allowed range %.2f-%.2f)",
            fraud_ratio,
            ratio,
            MIN_FRAUD_RATIO,
            MAX_FRAUD_RATIO,
        )
    # Half-up rounding so .5 cases do not depend on banker's rounding.
    exact = Decimal(total) * Decimal(str(ratio))
    fraud_count = int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return GenerationPlan(
        total_records=total,
        fraud_ratio=ratio,
        fraud_count=fraud_count,
        legit_count=total - fraud_count,
    )


class GenerationRun:
    """A lazy, restartable generation run.

    Iterating yields a :class:`GenerationProgress` after each batch and a
    final :class:`DatasetReady`. Every iteration starts over from scratch;
    with a fixed ``seed`` it reproduces the same records.
    """

    def __init__(
        self,
        plan: GenerationPlan,
        *,
        pools: TemplatePools = DEFAULT_POOLS,
        config: GeneratorConfig | None = None,
        seed: int | None = None,
    ) -> None:
        self.plan = plan
        self._pools = pools
        self._config = config or GeneratorConfig()
        self._seed = seed
        self._cancel = threading.Event()

    def __iter__(self) -> Iterator[GenerationEvent]:
        self._cancel.clear()
        return self._generate(np.random.default_rng(self._seed))

    def cancel(self) -> None:
        """Stop the current iteration before its next batch."""

        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _generate(self, rng: np.random.Generator) -> Iterator[GenerationEvent]:
        plan = self.plan
        batch_size = self._config.batch_size
        interval = self._config.shuffle_interval
        records: list[SyntheticRecord] = []
        shuffled_upto = 0
        LOGGER.info(
            "Generating %s synthetic records (%s fraud, %s legitimate)",
            plan.total_records,
            plan.fraud_count,
            plan.legit_count,
        )

        while len(records) < plan.total_records:
            if self._cancel.is_set():
                LOGGER.info("Generation cancelled after %s records", len(records))
                return
            batch_end = min(len(records) + batch_size, plan.total_records)
            while len(records) < batch_end:
                # Class order is fixed (fraud first); shuffling removes it later.
                is_fraud = len(records) < plan.fraud_count
                records.append(synthesize_record(rng, is_fraud, self._pools))
            if len(records) // interval > shuffled_upto // interval:
                rng.shuffle(records)
                shuffled_upto = len(records)
            LOGGER.debug("Generated %s/%s records", len(records), plan.total_records)
            yield GenerationProgress(processed=len(records), total=plan.total_records)

        if shuffled_upto < len(records):
            rng.shuffle(records)
        counts = Counter(record.label for record in records)
        LOGGER.info("Synthetic dataset ready: %s records", len(records))
        yield DatasetReady(
            records=tuple(records),
            label_counts=MappingProxyType({0: counts.get(0, 0), 1: counts.get(1, 0)}),
        )


class DatasetGenerator:
    """Factory for generation runs sharing pools and batching settings."""

    def __init__(
        self,
        config: GeneratorConfig | None = None,
        *,
        pools: TemplatePools = DEFAULT_POOLS,
    ) -> None:
        self._config = config or GeneratorConfig()
        self._pools = pools

    def run(
        self,
        total_records: int = 1000,
        fraud_ratio: float = 0.25,
        *,
        seed: int | None = None,
    ) -> GenerationRun:
        plan = plan_generation(total_records, fraud_ratio)
        return GenerationRun(plan, pools=self._pools, config=self._config, seed=seed)

    def generate(
        self,
        total_records: int = 1000,
        fraud_ratio: float = 0.25,
        *,
        seed: int | None = None,
        on_progress: Callable[[GenerationProgress], None] | None = None,
    ) -> DatasetReady:
        """Drive a run to completion on the calling thread."""

        run = self.run(total_records, fraud_ratio, seed=seed)
        for event in run:
            if isinstance(event, DatasetReady):
                return event
            if on_progress is not None:
                on_progress(event)
        raise RuntimeError("Generation run ended without producing a dataset.")


class BackgroundGeneration:
    """Runs a :class:`GenerationRun` on a worker thread.

    The worker yields between batches, so cancelling takes effect before the
    next batch starts and discards everything generated so far.
    """

    def __init__(
        self,
        run: GenerationRun,
        *,
        on_progress: Callable[[GenerationProgress], None] | None = None,
        on_ready: Callable[[DatasetReady], None] | None = None,
    ) -> None:
        self._run = run
        self._on_progress = on_progress
        self._on_ready = on_ready
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._result: DatasetReady | None = None
        self._error: BaseException | None = None

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                raise RuntimeError("This generation has already been started.")
            self._thread = threading.Thread(
                target=self._worker, name="safecheck-generator", daemon=True
            )
            self._thread.start()

    def cancel(self) -> None:
        self._cancel.set()
        self._run.cancel()

    def wait(self, timeout: float | None = None) -> DatasetReady | None:
        """Block until the run finishes; re-raise a worker failure."""

        if not self._done.wait(timeout):
            return None
        if self._error is not None:
            raise self._error
        return self._result

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._done.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def result(self) -> DatasetReady | None:
        return self._result

    def _worker(self) -> None:
        try:
            for event in self._run:
                if self._cancel.is_set():
                    break
                if isinstance(event, DatasetReady):
                    self._result = event
                    if self._on_ready is not None:
                        self._on_ready(event)
                elif self._on_progress is not None:
                    self._on_progress(event)
        except Exception as exc:
            LOGGER.exception("Background dataset generation failed")
            self._error = exc
        finally:
            self._done.set()


def synthesize_record(
    rng: np.random.Generator,
    is_fraud: bool,
    pools: TemplatePools = DEFAULT_POOLS,
) -> SyntheticRecord:
    """Fill one record from the class-specific pools and numeric ranges."""

    if is_fraud:
        from_domain = _pick(rng, pools.suspicious_domains)
        if rng.random() < FRAUD_MISMATCH_PROBABILITY:
            others = tuple(domain for domain in pools.suspicious_domains if domain != from_domain)
            return_path_domain = _pick(rng, others)
        else:
            return_path_domain = from_domain
        has_links = bool(rng.random() < LINK_PROBABILITY)
        return SyntheticRecord(
            label=1,
            subject=_pick(rng, pools.fraud_subjects),
            body=_pick(rng, pools.fraud_bodies),
            from_domain=from_domain,
            return_path_domain=return_path_domain,
            domain_mismatch_flag=from_domain != return_path_domain,
            sender_reputation_score=float(rng.uniform(0.0, 40.0)),
            time_anomaly_score=float(rng.uniform(0.5, 1.0)),
            attachment_type=".zip" if rng.random() < FRAUD_ZIP_PROBABILITY else ".pdf",
            urgency_keywords=frozenset(
                phrase
                for phrase in pools.urgency_phrases
                if rng.random() < URGENCY_PHRASE_PROBABILITY
            ),
            has_links=has_links,
            link_count=int(rng.integers(2, 7)) if has_links else 0,
        )

    domain = _pick(rng, pools.legit_domains)
    has_links = bool(rng.random() < LINK_PROBABILITY)
    return SyntheticRecord(
        label=0,
        subject=_pick(rng, pools.legit_subjects),
        body=_pick(rng, pools.legit_bodies),
        from_domain=domain,
        return_path_domain=domain,
        domain_mismatch_flag=False,
        sender_reputation_score=float(rng.uniform(60.0, 100.0)),
        time_anomaly_score=float(rng.uniform(0.0, 0.3)),
        attachment_type=".pdf",
        urgency_keywords=frozenset(),
        has_links=has_links,
        link_count=int(rng.integers(1, 3)) if has_links else 0,
    )


def _pick(rng: np.random.Generator, pool: tuple[str, ...]) -> str:
    return pool[int(rng.integers(len(pool)))]


__all__ = [
    "BackgroundGeneration",
    "DEFAULT_POOLS",
    "DatasetGenerator",
    "DatasetReady",
    "GenerationEvent",
    "GenerationPlan",
    "GenerationProgress",
    "GenerationRun",
    "TemplatePools",
    "plan_generation",
    "synthesize_record",
]
