from __future__ import annotations

from pathlib import Path

from safecheck.dataset import export_dataset, load_dataset
from safecheck.evaluation import evaluate_dataset
from safecheck.mailsource import EmlDirectorySource, read_message, record_from_message
from safecheck.pipeline import TriagePipeline
from safecheck.types import Verdict
from safecheck.watcher import MailDropWatcher

from tests.integration.conftest import PathCollector, write_message


def test_generate_export_and_evaluate(tmp_path: Path) -> None:
    pipeline = TriagePipeline()
    ready = None
    for event in pipeline.generate_dataset(600, 0.3, seed=17):
        ready = event
    assert ready is not None

    target = export_dataset(ready.records, tmp_path / "dataset.json")
    records = load_dataset(target)
    report = evaluate_dataset(records, pipeline)

    assert records == list(ready.records)
    assert report.total == 600
    assert report.true_positives + report.false_negatives == 180
    assert report.precision == 1.0
    assert report.recall > 0.5
    assert pipeline.compute_metrics().total_analyzed == 0


def test_directory_triage_end_to_end(tmp_path: Path) -> None:
    inbox = tmp_path / "inbox"
    write_message(
        inbox / "ham.eml",
        sender="alice@company.com",
        subject="Weekly Status Update",
        body="Notes from the sync.",
    )
    write_message(
        inbox / "spoof.eml",
        sender="ceo@corp.com",
        return_path="bounce@corp-secure.net",
        subject="Final notice",
        body="Act now: https://bit.ly/pay",
        auth="spf=fail; dkim=none; dmarc=fail",
    )
    pipeline = TriagePipeline()

    results = pipeline.triage_batch(EmlDirectorySource(inbox))

    verdicts = {result.subject: result.verdict for result in results}
    assert verdicts["Weekly Status Update"] is Verdict.LEGIT
    assert verdicts["Final notice"] is Verdict.PREDICTED_PHISHING
    metrics = pipeline.compute_metrics()
    assert metrics.total_analyzed == 2
    assert metrics.threats_detected == 1
    assert metrics.p95_latency_ms >= metrics.average_latency_ms > 0


def test_watcher_triages_dropped_messages(tmp_path: Path, collector: PathCollector) -> None:
    drop = tmp_path / "drop"
    pipeline = TriagePipeline()
    watcher = MailDropWatcher(drop, debounce_seconds=0.0)

    def _handle(path: Path) -> None:
        pipeline.extract_and_score(record_from_message(read_message(path)))
        collector.add(path)

    watcher.on_new_mail(_handle)
    watcher.start()
    try:
        staged = write_message(
            tmp_path / "staging" / "urgent.eml",
            sender="ceo@corp.com",
            return_path="bounce@corp-secure.net",
            subject="URGENT wire",
            body="https://bit.ly/x",
        )
        staged.rename(drop / "urgent.eml")
        assert collector.wait_for(1)
    finally:
        watcher.stop()

    assert collector.paths[0].name == "urgent.eml"
    assert pipeline.compute_metrics().threats_detected == 1
