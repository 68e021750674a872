"""CLI commands for one-off requests through the resilient client."""

import asyncio
import logging
import sys
from pathlib import Path

import click
import structlog
from pydantic import ValidationError

from resilient_http import __version__
from resilient_http.http.client import HttpClient
from resilient_http.http.config import ClientConfig, load_client_config
from resilient_http.http.constants import DEFAULT_STAGE
from resilient_http.http.errors import HttpClientError
from resilient_http.http.forms import encode_form
from resilient_http.http.models import RequestConfig, Response
from resilient_http.observability.context import RunContext
from resilient_http.observability.logging import (
    bind_run_context,
    clear_run_context,
    configure_logging,
)
from resilient_http.observability.metrics import HttpMetrics, write_summary
from resilient_http.settings import get_settings


logger = structlog.get_logger()

COMPONENT_CLI = "cli"


def _parse_pairs(values: tuple[str, ...], separator: str, option: str) -> dict[str, str]:
    """Parse ``key<sep>value`` option values.

    Raises:
        click.BadParameter: If a value lacks the separator or a key.
    """
    pairs: dict[str, str] = {}
    for value in values:
        key, sep, item = value.partition(separator)
        if not sep or not key.strip():
            msg = f"expected KEY{separator}VALUE, got {value!r}"
            raise click.BadParameter(msg, param_hint=option)
        pairs[key.strip()] = item.strip()
    return pairs


def _build_client(
    base_url: str,
    config: ClientConfig,
    metrics: HttpMetrics,
    context: RunContext,
) -> HttpClient:
    """Create the client used by ``fetch``."""
    return HttpClient(base_url, config, metrics=metrics, context=context)


async def _fetch(client: HttpClient, request: RequestConfig) -> Response:
    async with client:
        return await client.send_request(request)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Resilient HTTP client CLI."""


@cli.command()
@click.argument("url")
@click.option(
    "--method",
    "-X",
    default=None,
    help="HTTP method [default: GET, or POST when --data is given].",
)
@click.option(
    "--header",
    "-H",
    "headers",
    multiple=True,
    help="Extra request header as NAME:VALUE (repeatable).",
)
@click.option(
    "--data",
    "-d",
    "form_fields",
    multiple=True,
    help="URL-encoded form field as KEY=VALUE (repeatable).",
)
@click.option(
    "--stage",
    default=DEFAULT_STAGE,
    show_default=True,
    help="Stage label attached to logs and metrics.",
)
@click.option(
    "--max-retries",
    type=click.IntRange(0, 10),
    default=None,
    help="Retry limit for this request.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to a client configuration YAML file.",
)
@click.option(
    "--summary-out",
    type=click.Path(path_type=Path),
    help="Write the metrics summary JSON to this path.",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=None,
    help="Use JSON format for logs (default from RESILIENT_HTTP_JSON_LOGS).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
def fetch(  # noqa: PLR0913
    url: str,
    method: str | None,
    headers: tuple[str, ...],
    form_fields: tuple[str, ...],
    stage: str,
    max_retries: int | None,
    config_path: Path | None,
    summary_out: Path | None,
    json_logs: bool | None,
    verbose: bool,
) -> None:
    """Fetch URL and print the decoded body.

    The status line goes to stderr; the body goes to stdout. Exits with
    status 1 when the request fails without a response.
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        click.echo(f"Error: invalid RESILIENT_HTTP_* settings ({e.error_count()} errors)", err=True)
        sys.exit(1)

    log_level = logging.DEBUG if verbose else settings.log_level_value
    configure_logging(
        level=log_level,
        output=sys.stderr,
        json_format=settings.json_logs if json_logs is None else json_logs,
    )

    context = RunContext()
    bind_run_context(context)
    click.get_current_context().call_on_close(clear_run_context)
    log = logger.bind(component=COMPONENT_CLI, command="fetch")

    header_map = _parse_pairs(headers, ":", "--header")
    form = _parse_pairs(form_fields, "=", "--data")
    body: bytes | None = None
    if form:
        encoded = encode_form(form)
        body = encoded.body
        header_map = {"content-type": encoded.content_type, **header_map}
    if method is None:
        method = "POST" if form else "GET"

    try:
        base = load_client_config(config_path) if config_path else None
        config = settings.to_client_config(base)
        request = RequestConfig(
            method=method,
            url=url,
            headers=header_map,
            body=body,
            stage=stage,
            max_retries=max_retries,
        )
        metrics = HttpMetrics()
        client = _build_client(url, config, metrics, context)
    except (HttpClientError, ValidationError) as e:
        log.warning("fetch_setup_failed", error=str(e), error_type=type(e).__name__)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    exit_code = 0
    try:
        response = asyncio.run(_fetch(client, request))
    except HttpClientError as e:
        log.warning("fetch_failed", error=str(e), error_type=type(e).__name__)
        click.echo(f"Error: {e}", err=True)
        exit_code = 1
    else:
        click.echo(f"HTTP {response.status_code} {response.url}", err=True)
        click.echo(response.text())

    if summary_out is not None:
        summary = metrics.to_summary(
            {
                "run_id": context.run_id,
                "started_at": context.started_at.isoformat(),
                "stage": stage,
            }
        )
        write_summary(summary_out, summary)
        log.info("summary_written", path=str(summary_out))

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    cli()
