#!/usr/bin/env python3
"""
PiRSS - Full-Text RSS Proxy
===========================

Main application entry point with CLI interface for serving and diagnostics.

Usage:
    python main.py --help                    # Show all commands
    python main.py serve                     # Start the HTTP service
    python main.py check-config              # Validate configuration
    python main.py check-feed                # Probe upstream feed connectivity
    python main.py refresh                   # Generate the feeds once
    python main.py extract <url>             # Run the extractor on one page
"""

import sys
import asyncio
import time
from pathlib import Path

import click
from aiohttp import web
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from pirss.cache.cache_manager import CacheManager
from pirss.config.settings import get_settings
from pirss.ingestion.content_extractor import ContentExtractor
from pirss.ingestion.fetcher import FetchClient
from pirss.processing.feed_generator import FeedGenerator
from pirss.utils.exceptions import PiRSSError
from pirss.utils.logging import configure_application_logging
from pirss.web.app import create_app

console = Console()


def _setup_logging(settings, debug: bool = False) -> None:
    configure_application_logging(
        settings.logging,
        level="DEBUG" if debug else settings.get_effective_log_level(),
    )


def _load_settings_or_exit():
    try:
        return get_settings()
    except PiRSSError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """PiRSS - full-text RSS feeds with image proxy."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option('--host', default=None, help='Interface to bind (overrides config)')
@click.option('--port', default=None, type=int, help='Port to listen on (overrides config)')
@click.pass_context
def serve(ctx, host, port):
    """Start the HTTP service."""
    settings = _load_settings_or_exit()
    _setup_logging(settings, ctx.obj.get('debug'))

    if host:
        settings.server.host = host
    if port:
        settings.server.port = port

    console.print(
        f"[bold blue]🚀 PiRSS listening on http://{settings.server.host}:{settings.server.port}[/bold blue]"
    )
    web.run_app(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        print=None,
    )


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking PiRSS Configuration[/bold blue]")
    settings = _load_settings_or_exit()

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Setting")
    table.add_column("Value", style="green")

    rows = [
        ("Server", "public base URL", settings.server.resolve_base_url()),
        ("Primary feed", "upstream", settings.primary.feed_url),
        ("Primary feed", "route", settings.primary.route),
        ("Primary feed", "image CDN", settings.primary.cdn_domain),
        ("Secondary feed", "upstream", settings.secondary.feed_url),
        ("Secondary feed", "route", settings.secondary.route),
        ("Fetch", "attempts / base delay", f"{settings.fetch.max_attempts} / {settings.fetch.retry_base_delay}s"),
        ("Cache", "feed / article / image TTL",
         f"{settings.cache.feed_ttl}s / {settings.cache.article_ttl}s / {settings.cache.image_ttl}s"),
        ("Scheduler", "refresh",
         f"every {settings.scheduler.feed_refresh_interval_minutes} min"
         if settings.scheduler.feed_refresh_enabled else "disabled"),
        ("Logging", "level", settings.get_effective_log_level()),
    ]
    for row in rows:
        table.add_row(*row)

    console.print(table)
    console.print("[bold green]✅ All configuration checks passed![/bold green]")


@cli.command()
@click.option('--secondary', is_flag=True, help='Probe the secondary upstream feed')
def check_feed(secondary):
    """Probe upstream feed connectivity."""
    settings = _load_settings_or_exit()
    feed_url = settings.secondary.feed_url if secondary else settings.primary.feed_url
    console.print(f"[bold blue]📡 Checking upstream feed: {feed_url}[/bold blue]")

    async def run_check():
        async with FetchClient(settings) as client:
            started = time.monotonic()
            body = await client.fetch_feed(feed_url)
            return body, time.monotonic() - started

    try:
        body, elapsed = asyncio.run(run_check())
    except PiRSSError as e:
        console.print(f"[bold red]❌ Feed check failed: {e}[/bold red]")
        sys.exit(1)

    info_table = Table(title="Feed Check")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value", style="green")
    info_table.add_row("Status", "reachable")
    info_table.add_row("Size", f"{len(body)} characters")
    info_table.add_row("Latency", f"{elapsed:.2f}s")
    info_table.add_row("Preview", body[:200].replace("\n", " "))
    console.print(info_table)


@cli.command()
@click.option('--base-url', default=None, help='Public base URL for proxy links')
@click.option('--secondary', is_flag=True, help='Generate the secondary feed instead')
@click.pass_context
def refresh(ctx, base_url, secondary):
    """Generate a feed once and summarize the result."""
    settings = _load_settings_or_exit()
    _setup_logging(settings, ctx.obj.get('debug'))
    base_url = base_url or settings.server.resolve_base_url()

    async def run_generation():
        cache_manager = CacheManager(settings)
        async with FetchClient(settings) as client:
            generator = FeedGenerator(client, cache_manager, settings)
            if secondary:
                return await generator.build_secondary_document(base_url)
            return await generator.build_primary_document(base_url)

    try:
        document = asyncio.run(run_generation())
    except PiRSSError as e:
        console.print(f"[bold red]❌ Generation failed: {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ {document.channel.title}: {len(document.entries)} entries[/bold green]")
    table = Table()
    table.add_column("#", style="cyan")
    table.add_column("Title")
    table.add_column("Body size", style="green")
    for i, entry in enumerate(document.entries, 1):
        table.add_row(str(i), entry.title, f"{len(entry.description)} chars")
    console.print(table)


@cli.command()
@click.argument('url')
@click.option('--show-html', is_flag=True, help='Print the sanitized fragment')
def extract(url, show_html):
    """Run the content extractor on a single article page."""
    settings = _load_settings_or_exit()
    extractor = ContentExtractor(settings)

    async def run_fetch():
        async with FetchClient(settings) as client:
            return await client.fetch_article(url, headers={"Referer": settings.primary.referer})

    try:
        page = asyncio.run(run_fetch())
    except PiRSSError as e:
        console.print(f"[bold red]❌ Fetch failed: {e}[/bold red]")
        sys.exit(1)

    result = extractor.extract(page, url)
    if result.is_placeholder:
        console.print("[bold yellow]⚠️ No content rule matched, placeholder returned[/bold yellow]")
    else:
        console.print(f"[bold green]✅ Matched rule: {result.rule}[/bold green]")

    if result.metadata.headline:
        console.print(f"   📰 Headline: {result.metadata.headline}")
    if result.metadata.author:
        console.print(f"   ✍️ Author: {result.metadata.author}")
    console.print(f"   📝 Fragment: {len(result.html)} characters")

    if show_html:
        console.print(result.html, markup=False)


if __name__ == '__main__':
    cli()
