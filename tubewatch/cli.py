"""
Command-line interface for tubewatch.

Usage:
    tubewatch serve               # Run the API and live feed
    tubewatch search "lofi jazz"  # One-shot keyword search
    tubewatch watch jazz news     # Print new videos as they are published
"""

import asyncio
import json
import signal
import sys

import click

from tubewatch.config.settings import get_settings
from tubewatch.observability.logging import setup_logging
from tubewatch.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """tubewatch - live YouTube keyword watching."""
    setup_logging(level="DEBUG" if debug else None)


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def serve(
    host: str | None,
    port: int | None,
    reload: bool,
    metrics_port: int | None,
    metrics: bool,
) -> None:
    """Start the API server with the live feed."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    if metrics:
        metrics_port = metrics_port or settings.metrics_port
        get_metrics().start_server(port=metrics_port)
        click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Live feed on ws://localhost:{port}/ws")

    uvicorn.run(
        "tubewatch.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


def _format_video(keyword: str, video: dict) -> str:
    return (
        f"[{keyword}] {video.get('title')}\n"
        f"    {video.get('channelTitle')} · {video.get('videoUrl')}"
    )


@main.command()
@click.argument("keyword")
@click.option("--max-results", "-n", default=None, type=int, help="Number of results")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def search(keyword: str, max_results: int | None, as_json: bool) -> None:
    """Search YouTube once and print the results."""
    from tubewatch.live.schemas import normalize_keyword
    from tubewatch.youtube.client import GatewayError, YouTubeClient, YouTubeConfig

    normalized = normalize_keyword(keyword)
    if not normalized:
        raise click.BadParameter("keyword must not be blank", param_hint="KEYWORD")

    settings = get_settings()
    limit = max_results or settings.default_search_results

    async def run() -> list:
        async with YouTubeClient(YouTubeConfig.from_settings(settings)) as youtube:
            return await youtube.search(normalized, limit)

    try:
        videos = asyncio.run(run())
    except GatewayError as e:
        click.echo(click.style(f"Search failed: {e}", fg="red"), err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([v.to_dict() for v in videos], indent=2))
        return

    click.echo(f"{len(videos)} result(s) for {normalized!r}")
    for video in videos:
        click.echo(_format_video(normalized, {
            "title": video.title,
            "channelTitle": video.channel_title,
            "videoUrl": video.video_url,
        }))


class ConsoleTransport:
    """Live transport that prints ``video`` messages to the terminal."""

    def __init__(self) -> None:
        self._closed = asyncio.Event()

    async def send_text(self, data: str) -> None:
        message = json.loads(data)
        if message.get("type") == "video":
            click.echo(_format_video(message["keyword"], message))

    async def receive_text(self) -> str:
        await self._closed.wait()
        raise ConnectionError("console closed")

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self._closed.set()


@main.command()
@click.argument("keywords", nargs=-1, required=True)
@click.option("--interval", default=None, type=float, help="Seconds between polls")
@click.option("--ticks", default=0, type=int, help="Stop after N polls (0 = run forever)")
def watch(keywords: tuple[str, ...], interval: float | None, ticks: int) -> None:
    """Poll KEYWORDS and print newly published videos until interrupted."""
    from tubewatch.live.config import LiveConfig
    from tubewatch.live.connection import CLOSE_POLICY_VIOLATION
    from tubewatch.live.schemas import InvalidInputError
    from tubewatch.live.service import LiveFeedService
    from tubewatch.youtube.client import YouTubeClient, YouTubeConfig

    overrides = {"poll_interval_seconds": interval} if interval else {}
    config = LiveConfig(**overrides)

    async def run() -> None:
        async with YouTubeClient(YouTubeConfig.from_settings()) as youtube:
            service = LiveFeedService(youtube, config=config)
            connection = await service.connections.accept(ConsoleTransport())
            try:
                service.registry.register(connection, list(keywords))
            except InvalidInputError as e:
                await service.connections.close(
                    connection, reason=f"invalid keywords: {e}", code=CLOSE_POLICY_VIOLATION
                )
                raise click.BadParameter(str(e), param_hint="KEYWORDS") from e

            click.echo(f"Watching {', '.join(sorted(connection.keywords))} (Ctrl+C to stop)")

            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, stop.set)

            polls = 0
            while not stop.is_set():
                await service.scheduler.poll_once()
                polls += 1
                if ticks and polls >= ticks:
                    break
                try:
                    await asyncio.wait_for(stop.wait(), timeout=config.poll_interval_seconds)
                except asyncio.TimeoutError:
                    pass

            await service.stop()

    asyncio.run(run())


if __name__ == "__main__":
    main()
