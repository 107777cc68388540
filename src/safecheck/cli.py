"""SafeCheck command-line interface."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from . import __version__
from .config import Config, ConfigError, load_config
from .dataset import DEFAULT_EXPORT_NAME, DatasetFormatError, export_dataset, load_dataset
from .evaluation import evaluate_dataset
from .generator import BackgroundGeneration, DatasetReady, GenerationProgress
from .logging import configure_logging
from .mailsource import EmlDirectorySource, SourceUnavailable, read_message, record_from_message
from .pipeline import TriagePipeline
from .types import RunningMetrics, ScoreResult
from .watcher import MailDropWatcher

app = typer.Typer(help="SafeCheck email threat triage utilities.")
LOGGER = logging.getLogger(__name__)


@dataclass
class CLIState:
    """Stores shared CLI options."""

    config_path: Path | None


@app.callback()
def _safecheck(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "-c",
            "--config",
            help="Path to SafeCheck config (env SAFECHECK_CONFIG or ~/.config/safecheck/config.yaml).",
        ),
    ] = None,
) -> None:
    """Capture global CLI options."""

    resolved = config.expanduser() if config else None
    ctx.obj = CLIState(config_path=resolved)


@app.command()
def version() -> None:
    """Print the installed SafeCheck version."""

    typer.echo(__version__)


@app.command()
def triage(
    ctx: typer.Context,
    paths: Annotated[
        list[Path],
        typer.Argument(..., help=".eml files or directories containing .eml files."),
    ],
    limit: Annotated[
        int | None,
        typer.Option("-n", "--limit", help="Maximum messages to read per directory."),
    ] = None,
) -> None:
    """Score one or more messages and print a verdict per message."""

    config = _load_environment(_state(ctx))
    pipeline = TriagePipeline.from_config(config)

    try:
        for path in paths:
            target = path.expanduser()
            if target.is_dir():
                results = pipeline.triage_batch(EmlDirectorySource(target), limit)
            elif target.is_file():
                results = [pipeline.extract_and_score(record_from_message(read_message(target)))]
            else:
                typer.secho(f"Message path not found: {target}", fg=typer.colors.RED, err=True)
                raise typer.Exit(1)
            for result in results:
                typer.echo(_format_result(result))
    except SourceUnavailable as exc:
        typer.secho(f"Mail source unavailable: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc

    typer.echo("")
    _echo_metrics(pipeline.compute_metrics())


@app.command()
def watch(
    ctx: typer.Context,
    directory: Annotated[Path, typer.Argument(..., help="Directory to watch for new .eml files.")],
) -> None:
    """Triage messages as they are dropped into a directory (Ctrl-C to stop)."""

    config = _load_environment(_state(ctx))
    pipeline = TriagePipeline.from_config(config)
    watcher = MailDropWatcher(directory)

    def _handle(path: Path) -> None:
        try:
            record = record_from_message(read_message(path))
        except SourceUnavailable as exc:
            LOGGER.error("Skipping %s: %s", path, exc)
            return
        typer.echo(_format_result(pipeline.extract_and_score(record)))

    watcher.on_new_mail(_handle)
    watcher.start()
    typer.echo(f"Watching {watcher.directory} (Ctrl-C to stop)")
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        LOGGER.info("Interrupt received; stopping watcher.")
    finally:
        watcher.stop()
    typer.echo("")
    _echo_metrics(pipeline.compute_metrics())


@app.command()
def generate(
    ctx: typer.Context,
    total: Annotated[
        int,
        typer.Option("-n", "--total", help="Number of records (minimum 100)."),
    ] = 1000,
    fraud_ratio: Annotated[
        float,
        typer.Option("-r", "--fraud-ratio", help="Share of fraud/phishing records (0.10-0.50)."),
    ] = 0.25,
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Where to write the JSON dataset."),
    ] = Path(DEFAULT_EXPORT_NAME),
    seed: Annotated[
        int | None,
        typer.Option("--seed", help="Seed for reproducible record content."),
    ] = None,
) -> None:
    """Generate a labelled synthetic dataset and export it as JSON."""

    config = _load_environment(_state(ctx))
    pipeline = TriagePipeline.from_config(config)
    run = pipeline.generate_dataset(total, fraud_ratio, seed=seed)

    def _progress(event: GenerationProgress) -> None:
        typer.echo(f"  {event.processed}/{event.total} records ({event.percent:.0f}%)")

    background = BackgroundGeneration(run, on_progress=_progress)
    background.start()
    try:
        ready = background.wait()
    except KeyboardInterrupt:
        background.cancel()
        background.wait()
        typer.secho("Generation cancelled; nothing written.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(130) from None

    if not isinstance(ready, DatasetReady):
        typer.secho("Generation did not complete.", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    target = export_dataset(ready.records, output)
    typer.echo(
        f"Dataset ready: {len(ready.records)} records "
        f"({ready.label_counts[0]} legitimate, {ready.label_counts[1]} fraud) -> {target}"
    )


@app.command()
def evaluate(
    ctx: typer.Context,
    dataset: Annotated[Path, typer.Argument(..., help="JSON dataset produced by 'generate'.")],
) -> None:
    """Measure verdict quality against a labelled synthetic dataset."""

    config = _load_environment(_state(ctx))
    pipeline = TriagePipeline.from_config(config)
    try:
        records = load_dataset(dataset)
    except DatasetFormatError as exc:
        typer.secho(f"Invalid dataset: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc

    report = evaluate_dataset(records, pipeline)
    typer.echo(f"Records: {report.total}")
    typer.echo(
        f"Confusion: tp={report.true_positives} fp={report.false_positives} "
        f"tn={report.true_negatives} fn={report.false_negatives}"
    )
    typer.echo(f"Precision: {report.precision:.3f}")
    typer.echo(f"Recall: {report.recall:.3f}")
    typer.echo(f"False positive rate: {report.false_positive_rate:.3f}")
    typer.echo(f"Accuracy: {report.accuracy:.3f}")


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise RuntimeError("CLI state missing from context.")
    return state


def _load_environment(state: CLIState) -> Config:
    config = _load_config(state.config_path)
    try:
        configure_logging(config.logging, config.root_dir)
    except ConfigError as exc:
        _config_failure(exc)
    return config


def _load_config(path: Path | None) -> Config:
    try:
        return load_config(path)
    except ConfigError as exc:
        _config_failure(exc)


def _config_failure(exc: ConfigError) -> NoReturn:
    typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(2) from exc


def _format_result(result: ScoreResult) -> str:
    signals = ",".join(sorted(result.contributions)) or "-"
    return (
        f"{result.verdict.value:<18} score={result.threat_score:>3} "
        f"confidence={result.confidence:.2f} latency={result.latency_ms:.1f}ms "
        f"signals={signals} from={result.sender or '-'} subject={result.subject!r}"
    )


def _echo_metrics(metrics: RunningMetrics) -> None:
    typer.echo("Metrics:")
    typer.echo(f"  analyzed: {metrics.total_analyzed}")
    typer.echo(f"  threats: {metrics.threats_detected}")
    typer.echo(f"  average latency: {metrics.average_latency_ms:.1f}ms")
    typer.echo(f"  p95 latency: {metrics.p95_latency_ms:.1f}ms ({metrics.latency_status.value})")
    for line in _verdict_lines(metrics):
        typer.echo(line)


def _verdict_lines(metrics: RunningMetrics) -> Iterable[str]:
    for verdict, count in metrics.verdict_counts.items():
        yield f"  {verdict.value}: {count}"


def main() -> None:  # pragma: no cover - delegated to Typer
    app()


__all__ = ["app", "main"]
