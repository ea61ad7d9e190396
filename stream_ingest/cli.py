"""CLI for the Stream Ingest Pipeline."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from stream_ingest.captions.transcoder import transcode_captions
from stream_ingest.core.config import get_settings
from stream_ingest.core.exceptions import PayloadTooLargeError, PipelineError
from stream_ingest.core.http_session import close_all_clients, get_client
from stream_ingest.core.logging_config import setup_logging
from stream_ingest.core.schemas import AnalysisReport, IngestResult, StatusPayload
from stream_ingest.database.redis import close_redis, init_redis
from stream_ingest.llm_agents.metadata_agent import MetadataAgent
from stream_ingest.pipeline.keyframes import build_thumbnail_url, sample_keyframe_times
from stream_ingest.pipeline.metadata import MetadataSynthesizer
from stream_ingest.stream.client import StreamClient
from stream_ingest.stream.signing import get_token_issuer
from stream_ingest.stream.status import StatusReporter
from stream_ingest.stream.uploader import UploadOrchestrator

app = typer.Typer(help="Stream Ingest Pipeline - Ingest videos and synthesize metadata")
console = Console()

T = TypeVar("T")


def _parse_meta(pairs: list[str] | None) -> dict[str, str]:
    """Turn ``key=value`` options into a metadata dict."""
    meta: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {pair!r}")
        meta[key.strip()] = value.strip()
    return meta


def _run_with_store(action: Callable[[StreamClient], Awaitable[T]]) -> T:
    """Run an async action with a store client, closing everything afterwards."""

    async def _main() -> T:
        try:
            async with StreamClient.from_settings() as store:
                return await action(store)
        finally:
            await close_all_clients()

    return asyncio.run(_main())


def _fail(e: PipelineError) -> None:
    rprint(f"[red]✗ {escape(e.error_code)}: {escape(e.message)}[/red]")
    if e.details:
        console.print_json(json.dumps(e.details, default=str))


def _print_json(data: Any) -> None:
    rprint("\n[dim]--- JSON Output ---[/dim]")
    console.print_json(json.dumps(data, default=str))


def _display_ingest(result: IngestResult) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan", width=18)
    table.add_column("Value", style="white")

    table.add_row("UID", result.uid)
    table.add_row("Method", result.method)
    if result.upload_url:
        table.add_row("Upload URL", result.upload_url)
    if result.thumbnail_url:
        table.add_row("Thumbnail", result.thumbnail_url)
    if result.bytes_transferred:
        table.add_row("Bytes", f"{result.bytes_transferred:,}")

    console.print(Panel(table, title="[bold green]✓ Ingested[/bold green]", expand=False))


@app.command()
def ingest(
    url: str = typer.Argument(..., help="Publicly reachable video URL"),
    meta: list[str] | None = typer.Option(None, "--meta", "-m", help="Metadata as key=value"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON only"),
):
    """
    Ingest a video from a URL.

    The store copies the URL server-side; if it refuses, the file is fetched
    and pushed through a resumable upload once, under the size ceiling.
    """
    metadata = _parse_meta(meta)
    settings = get_settings()

    async def _ingest(store: StreamClient) -> IngestResult:
        http = get_client("external", timeout=settings.upstream_timeout_seconds)
        uploader = UploadOrchestrator.from_settings(store, http, settings)
        return await uploader.ingest(url, meta=metadata)

    try:
        result = _run_with_store(_ingest)
    except PipelineError as e:
        _fail(e)
        raise typer.Exit(1) from e

    if not json_output:
        _display_ingest(result)
    _print_json(result.model_dump())


@app.command("upload-file")
def upload_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Local video file"),
    name: str | None = typer.Option(None, help="Video name stored in metadata"),
    meta: list[str] | None = typer.Option(None, "--meta", "-m", help="Metadata as key=value"),
):
    """Upload a local file through a resumable upload session."""
    metadata = _parse_meta(meta)
    metadata.setdefault("name", name or path.name)
    settings = get_settings()

    size = path.stat().st_size
    if size > settings.stream_through_max_bytes:
        _fail(
            PayloadTooLargeError(
                f"{path.name} is {size:,} bytes; limit is "
                f"{settings.stream_through_max_bytes:,} bytes",
            )
        )
        raise typer.Exit(1)

    async def _upload(store: StreamClient) -> IngestResult:
        http = get_client("external", timeout=settings.upstream_timeout_seconds)
        uploader = UploadOrchestrator.from_settings(store, http, settings)
        return await uploader.ingest_bytes(path.read_bytes(), meta=metadata, label=str(path))

    try:
        result = _run_with_store(_upload)
    except PipelineError as e:
        _fail(e)
        raise typer.Exit(1) from e

    _display_ingest(result)


@app.command("direct-upload")
def direct_upload(
    max_duration: int | None = typer.Option(
        None, "--max-duration", help="Maximum video length in seconds"
    ),
    meta: list[str] | None = typer.Option(None, "--meta", "-m", help="Metadata as key=value"),
):
    """Create a one-time upload URL for a browser client."""
    metadata = _parse_meta(meta)
    settings = get_settings()

    async def _create(store: StreamClient) -> IngestResult:
        http = get_client("external", timeout=settings.upstream_timeout_seconds)
        uploader = UploadOrchestrator.from_settings(store, http, settings)
        return await uploader.create_direct_upload(meta=metadata, max_duration_seconds=max_duration)

    try:
        result = _run_with_store(_create)
    except PipelineError as e:
        _fail(e)
        raise typer.Exit(1) from e

    _display_ingest(result)


@app.command()
def status(
    uid: str = typer.Argument(..., help="Store identifier of the video"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON only"),
):
    """Show processing status, signed URLs and caption tracks."""
    settings = get_settings()

    async def _status(store: StreamClient) -> StatusPayload:
        reporter = StatusReporter(
            store,
            get_token_issuer,
            keyframe_count=settings.keyframe_count,
            thumbnail_width=settings.keyframe_width,
        )
        return await reporter.get_status(uid)

    try:
        payload = _run_with_store(_status)
    except PipelineError as e:
        _fail(e)
        raise typer.Exit(1) from e

    if not json_output:
        table = Table(show_header=False, box=None)
        table.add_column("Field", style="cyan", width=18)
        table.add_column("Value", style="white")
        table.add_row("State", payload.state)
        table.add_row("Ready", "✓" if payload.ready_to_stream else "✗")
        if payload.pct_complete is not None:
            table.add_row("Progress", f"{payload.pct_complete:.0f}%")
        if payload.duration_seconds is not None:
            table.add_row("Duration", f"{payload.duration_seconds:.1f}s")
        if payload.error_code:
            table.add_row("Error", f"{payload.error_code}: {payload.error_message or ''}")
        if payload.playback:
            table.add_row("Playback", payload.playback.playback_url)
        table.add_row("Thumbnails", str(len(payload.thumbnails)))
        captions = ", ".join(c.language for c in payload.captions) or payload.captions_status
        table.add_row("Captions", captions)
        console.print(Panel(table, title=f"[bold blue]📼 {uid}[/bold blue]", expand=False))

    _print_json(payload.model_dump())


@app.command()
def sign(
    uid: str = typer.Argument(..., help="Store identifier of the video"),
    ttl: int | None = typer.Option(None, help="Token lifetime in seconds"),
    downloadable: bool = typer.Option(False, help="Allow MP4 downloads"),
    thumbnail_time: float | None = typer.Option(None, help="Thumbnail position in seconds"),
    domain: str | None = typer.Option(None, help="Override the delivery domain"),
):
    """Issue a signed playback URL."""
    try:
        signed = get_token_issuer().issue(
            uid,
            ttl_seconds=ttl,
            downloadable=downloadable,
            thumbnail_time_seconds=thumbnail_time,
            domain_override=domain,
        )
    except PipelineError as e:
        _fail(e)
        raise typer.Exit(1) from e

    _print_json(signed.to_response())


@app.command()
def captions(
    uid: str = typer.Argument(..., help="Store identifier of the video"),
    language: str | None = typer.Option(None, "--language", "-l", help="Caption language"),
    generate: bool = typer.Option(False, help="Request AI captions instead of fetching"),
    csv: bool = typer.Option(False, "--csv", help="Print the CSV transcript"),
):
    """Fetch and render captions, or request AI caption generation."""
    lang = language or get_settings().caption_language

    async def _generate(store: StreamClient) -> dict[str, Any]:
        return await store.generate_captions(uid, lang)

    async def _fetch(store: StreamClient) -> str:
        return await store.fetch_caption_vtt(uid, lang)

    try:
        if generate:
            result = _run_with_store(_generate)
            rprint(f"[green]✓ Caption generation requested ({lang})[/green]")
            _print_json(result)
            return
        raw = _run_with_store(_fetch)
    except PipelineError as e:
        _fail(e)
        raise typer.Exit(1) from e

    transcript = transcode_captions(raw)
    if not transcript.segments:
        rprint(f"[yellow]No caption cues found for {uid} ({lang})[/yellow]")
        return

    rprint(f"\n[bold blue]💬 {transcript.segment_count} segments ({lang})[/bold blue]\n")
    console.print(transcript.csv_transcript if csv else transcript.plain_text, markup=False)


@app.command()
def keyframes(
    duration: float | None = typer.Argument(None, help="Video duration in seconds"),
    count: int = typer.Option(8, help="Number of keyframes"),
    uid: str | None = typer.Option(None, help="Also print public thumbnail URLs for this uid"),
):
    """Show the keyframe timestamps sampled for a duration."""
    times = sample_keyframe_times(duration, count)

    table = Table()
    table.add_column("#", style="dim", justify="right")
    table.add_column("Time (s)", style="cyan", justify="right")
    for i, t in enumerate(times, 1):
        table.add_row(str(i), f"{t:g}")
    console.print(table)

    if uid:
        settings = get_settings()
        # URLs stay on one line so they can be copied whole
        for i, t in enumerate(times, 1):
            url = build_thumbnail_url(
                uid, t, settings.keyframe_width, settings.public_thumbnail_base
            )
            console.print(f"{i}. {url}", soft_wrap=True, markup=False, highlight=False)


@app.command()
def analyze(
    uid: str = typer.Argument(..., help="Store identifier of the video"),
    write_back: bool = typer.Option(True, help="Save the result onto the video"),
    debug: bool = typer.Option(False, help="Include the exact model inputs"),
):
    """Synthesize title, description and tags for a video."""
    settings = get_settings()

    async def _analyze(store: StreamClient) -> AnalysisReport:
        lease_manager = await init_redis() if settings.redis_enabled else None
        try:
            synthesizer = MetadataSynthesizer(
                store,
                get_client("external", timeout=settings.upstream_timeout_seconds),
                MetadataAgent,
                lease_manager=lease_manager,
                issuer_provider=get_token_issuer,
                settings=settings,
            )
            return await synthesizer.synthesize(uid, include_debug=debug, write_back=write_back)
        finally:
            if lease_manager is not None:
                await close_redis()

    try:
        report = _run_with_store(_analyze)
    except PipelineError as e:
        _fail(e)
        raise typer.Exit(1) from e

    result = report.result
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan", width=18)
    table.add_column("Value", style="white")
    table.add_row("Title", result.title)
    table.add_row("Category", result.category)
    table.add_row("Mood", result.mood)
    table.add_row("Rating", result.content_rating)
    table.add_row("Language", result.language)
    table.add_row("Tags", ", ".join(result.tags))
    table.add_row("Confidence", f"{result.confidence:.2f}")
    keyframe_info = report.keyframes
    table.add_row("Keyframes", f"{len(keyframe_info.validated_urls)}/{keyframe_info.candidates}")
    table.add_row("Captions", report.captions_status)
    table.add_row("Write-back", report.write_back.status)
    console.print(Panel(table, title="[bold green]✓ Analysis[/bold green]", expand=False))
    rprint(f"\n{escape(result.description)}")

    _print_json(report.model_dump(exclude_none=True))


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    uvicorn.run(
        "stream_ingest.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    app()
