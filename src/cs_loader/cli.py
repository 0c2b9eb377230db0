import json
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from prometheus_client import start_http_server

from .batch import Batch, BatchAccumulator, BatchConfig
from .config import get_settings
from .errors import LoaderError
from .models import Document
from .pipeline import coordinator_from_settings, run_pipeline
from .source import build_engine, coerce_document, iter_documents, iter_ndjson
from .transport import transport_factory

app = typer.Typer(help="Database to CloudSearch batch loader")

# ---------------------------
# Common options
# ---------------------------


def async_opt() -> Optional[bool]:
    return typer.Option(
        None, "--async/--sync", help="Fire-and-forget uploads (default: USE_ASYNC env)"
    )


def skip_oversize_opt() -> bool:
    return typer.Option(
        False, "--skip-oversize", help="Skip documents larger than a batch instead of aborting"
    )


def verbose_opt() -> bool:
    return typer.Option(False, "--verbose", "-v", help="Debug logging")


def metrics_port_opt() -> Optional[int]:
    return typer.Option(None, "--metrics-port", help="Serve Prometheus metrics on this port")


def _setup_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _serve_metrics(port: Optional[int]) -> None:
    if port:
        start_http_server(port)
        logger.info(f"Prometheus metrics available at http://localhost:{port}/metrics")


def _settings(use_async: Optional[bool]):
    settings = get_settings()
    if use_async is not None:
        settings = settings.model_copy(update={"USE_ASYNC": use_async})
    return settings


def _run(documents, settings, skip_oversize: bool) -> None:
    coord = coordinator_from_settings(settings, transport_factory(settings))
    logger.info(f"Started ({coord.mode} dispatch)...")
    try:
        summary = run_pipeline(
            documents,
            coord,
            config=settings.batch_config,
            skip_oversize=skip_oversize,
        )
    except LoaderError as e:
        logger.error(f"Run aborted: {e}")
        raise typer.Exit(code=1)
    for line in summary.lines():
        typer.echo(line)
    logger.success(f"...ended in {summary.elapsed_s:.0f}s.")


# ---------------------------
# Commands
# ---------------------------


@app.command("run")
def run(
    query: Optional[str] = typer.Option(None, "--query", help="Override SOURCE_QUERY"),
    use_async: Optional[bool] = async_opt(),
    skip_oversize: bool = skip_oversize_opt(),
    metrics_port: Optional[int] = metrics_port_opt(),
    verbose: bool = verbose_opt(),
):
    """Extract rows from the database and upload them as documents."""
    _setup_logging(verbose)
    settings = _settings(use_async)
    _serve_metrics(metrics_port)
    engine = build_engine(settings.database_url)
    try:
        docs = iter_documents(
            engine,
            query or settings.SOURCE_QUERY,
            fetch_size=settings.FETCH_SIZE,
            id_prefix=settings.DOCUMENT_ID_PREFIX,
        )
        _run(docs, settings, skip_oversize)
    finally:
        engine.dispose()


@app.command("ingest-ndjson")
def ingest_ndjson(
    path: str = typer.Argument(..., help="File path or '-' for stdin (.gz ok)"),
    use_async: Optional[bool] = async_opt(),
    skip_oversize: bool = skip_oversize_opt(),
    metrics_port: Optional[int] = metrics_port_opt(),
    verbose: bool = verbose_opt(),
):
    """Upload documents from an NDJSON file (batch items or flat rows with an id)."""
    _setup_logging(verbose)
    settings = _settings(use_async)
    _serve_metrics(metrics_port)
    _run((coerce_document(obj) for obj in iter_ndjson(path)), settings, skip_oversize)


@app.command("plan")
def plan(
    path: str = typer.Argument(..., help="NDJSON file or '-' for stdin"),
    ceiling: Optional[int] = typer.Option(None, "--ceiling", help="Override BATCH_BYTE_CEILING"),
):
    """Dry run: show how an NDJSON file would be batched, without uploading."""
    settings = get_settings()
    cfg = BatchConfig(
        ceiling=ceiling or settings.BATCH_BYTE_CEILING, margin=settings.SAFETY_MARGIN_FRACTION
    )
    acc = BatchAccumulator(cfg)
    batches = []
    for obj in iter_ndjson(path):
        result = acc.offer(coerce_document(obj))
        if result.rejected:
            typer.echo(json.dumps({"rejected": result.error.document_id, "size": result.error.size}))
            continue
        if result.batch is not None:
            batches.append(result.batch)
    last = acc.add(Document.sentinel())
    if last is not None:
        batches.append(last)
    for i, b in enumerate(batches, 1):
        typer.echo(json.dumps({"batch": i, "documents": len(b), "bytes": b.size}))
    typer.echo(
        json.dumps(
            {"batches": acc.batches_uploaded, "documents": acc.documents_uploaded}, indent=2
        )
    )


@app.command("replay")
def replay(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved failure payload"),
    verbose: bool = verbose_opt(),
):
    """Re-send a payload saved by the failure sink, byte for byte."""
    _setup_logging(verbose)
    settings = _settings(False)
    payload = path.read_bytes()
    try:
        batch = Batch.from_payload(payload)
    except ValueError as e:
        # json.JSONDecodeError is a ValueError
        raise typer.BadParameter(f"{path} is not a JSON batch: {e}")
    if batch.size > settings.BATCH_BYTE_CEILING:
        raise typer.BadParameter(
            f"{path} is {batch.size} bytes, over the {settings.BATCH_BYTE_CEILING} byte ceiling"
        )

    coord = coordinator_from_settings(settings, transport_factory(settings))
    try:
        with coord:
            outcome = coord.dispatch(batch, is_final=True)
    except LoaderError as e:
        logger.error(f"Replay failed: {e}")
        raise typer.Exit(code=1)
    typer.echo(json.dumps({"state": outcome.state.value, "documents": len(batch)}))


if __name__ == "__main__":
    app()
