"""Command line interface for tlsfetch.

Fetches one resource over TLS, prints progress lines and a summary table,
and writes the response body to the output file.
"""

from __future__ import annotations

import logging
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from tlsfetch import __version__
from tlsfetch.config.config import init_config
from tlsfetch.fetch.fetcher import Fetcher, FetchResult
from tlsfetch.models import LogLevel
from tlsfetch.utils.exceptions import TLSFetchError

logger = logging.getLogger(__name__)


def _verbosity_to_level(verbose: int) -> LogLevel | None:
    """Map -v count to a log level; None keeps the configured level."""
    if verbose >= 2:
        return LogLevel.DEBUG
    if verbose == 1:
        return LogLevel.INFO
    return None


def _build_overrides(options: dict[str, Any]) -> dict[str, Any]:
    """Translate CLI options into dotted config paths."""
    overrides: dict[str, Any] = {
        "target.host": options.get("host"),
        "target.port": options.get("port"),
        "output.path": options.get("output"),
        "tls.ca_certificates": options.get("ca_file"),
        "drain.read_timeout_ms": options.get("read_timeout_ms"),
        "drain.max_idle_retries": options.get("max_idle_retries"),
        "drain.chunk_size": options.get("chunk_size"),
        "observability.log_level": _verbosity_to_level(options.get("verbose", 0)),
    }
    if options.get("insecure"):
        overrides["tls.check_hostname"] = False
        overrides["tls.verify_certificates"] = False
    return overrides


def _summary_table(result: FetchResult) -> Table:
    table = Table(title="Fetch summary", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Host", f"{result.host} ({result.address}:{result.port})")
    table.add_row("Protocol", result.tls_version or "-")
    table.add_row("Cipher", result.cipher or "-")
    head = result.response_head
    table.add_row(
        "Status",
        f"{head.status_code} {head.reason}".strip() if head is not None else "-",
    )
    outcome = result.outcome
    style = "red" if outcome.is_fatal else "green"
    table.add_row("Termination", f"[{style}]{outcome.reason.name}[/{style}]")
    table.add_row("Bytes read", str(outcome.bytes_read))
    table.add_row("Content bytes", str(outcome.content_bytes))
    table.add_row("Output", str(result.output_path))
    return table


@click.command(name="tlsfetch")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.option("--host", type=str, help="Host to fetch from")
@click.option("--port", type=int, help="TCP port")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Output file")
@click.option(
    "--ca-file",
    type=click.Path(exists=True),
    help="PEM CA bundle file or directory",
)
@click.option("--read-timeout-ms", type=int, help="Idle timeout per readiness wait (ms)")
@click.option("--max-idle-retries", type=int, help="Empty wakeups before giving up")
@click.option("--chunk-size", type=int, help="Maximum bytes per read")
@click.option(
    "--insecure",
    is_flag=True,
    help="Skip certificate and hostname verification",
)
@click.version_option(__version__, prog_name="tlsfetch")
def main(config: str | None, **options: Any) -> None:
    """Fetch one resource over TLS and save the response body."""
    console = Console()

    try:
        manager = init_config(config)
        cfg = manager.apply_overrides(_build_overrides(options))
    except TLSFetchError as e:
        raise click.ClickException(str(e)) from e

    if options.get("insecure"):
        console.print("[yellow]Warning: certificate verification disabled[/yellow]")

    fetcher = Fetcher(cfg, progress=console.print)
    try:
        result = fetcher.fetch()
    except TLSFetchError as e:
        logger.debug("Fetch failed", exc_info=True)
        raise click.ClickException(str(e)) from e

    console.print(_summary_table(result))

    if not result.ok:
        outcome = result.outcome
        detail = f" ({outcome.error_kind})" if outcome.error_kind else ""
        msg = (
            f"Transfer failed: {outcome.reason.name}{detail}; "
            f"partial output kept in {result.output_path}"
        )
        raise click.ClickException(msg)
