"""
azsigner Command-Line Interface

Signs Azure Storage requests with SharedKey and runs the signing relay.
"""

import sys
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import click
import uvicorn

from azsigner import __version__
from azsigner.auth import (
    Credentials,
    RequestDescriptor,
    SigningError,
    build_authorization_header,
    build_string_to_sign,
    verify_signature,
)
from azsigner.core.config_manager import ConfigManager, DEFAULT_API_VERSION
from azsigner.core.logging_config import setup_logging
from azsigner.relay.dispatcher import format_http_date


def _parse_header_options(values: Tuple[str, ...]) -> Tuple[Tuple[str, str], ...]:
    headers = []
    for value in values:
        name, sep, header_value = value.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"Header must be in 'Name: value' format: {value}", param_hint="--header")
        headers.append((name.strip(), header_value.strip()))
    return tuple(headers)


def _build_descriptor(
    method: str,
    url: str,
    header: Tuple[str, ...],
    add_date: bool,
    api_version: Optional[str],
) -> RequestDescriptor:
    headers = list(_parse_header_options(header))
    if add_date:
        headers.append(("x-ms-date", format_http_date(datetime.now(timezone.utc))))
    if api_version:
        headers.append(("x-ms-version", api_version))
    return RequestDescriptor.create(method.upper(), url, headers)


def _load_credentials(account: Optional[str], key: Optional[str], service: str) -> Credentials:
    config = ConfigManager().load()
    account = account or config.account.name
    key = key or config.account.shared_key
    if not account or key is None:
        raise click.UsageError("Account name and key are required (--account/--key or AZ_ACCOUNT_NAME/AZ_SHARED_KEY)")
    return Credentials.from_base64(account, key, service)


def _signing_options(func):
    """Options shared by the sign and verify commands."""
    options = [
        click.argument("method"),
        click.argument("url"),
        click.option("--header", "-H", multiple=True, help="Request header as 'Name: value' (repeatable)"),
        click.option("--account", "-a", help="Storage account name (default: from environment)"),
        click.option("--key", "-k", help="Base64-encoded account key (default: from environment)"),
        click.option("--service", "-s", default="blob", show_default=True, help="Target service"),
        click.option("--date", "add_date", is_flag=True, help="Add an x-ms-date header for the current time"),
        click.option("--api-version", "api_version", default=None, help=f"Add an x-ms-version header (e.g. {DEFAULT_API_VERSION})"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="azsigner")
@click.pass_context
def cli(ctx):
    """
    azsigner - Azure Storage SharedKey request signing

    Compute SharedKey Authorization headers or run a relay that signs
    requests on the way to Azure Storage.
    """
    ctx.ensure_object(dict)


@cli.command()
@_signing_options
@click.option("--show-string", is_flag=True, help="Also print the string-to-sign")
def sign(method, url, header, account, key, service, add_date, api_version, show_string):
    """
    Print the Authorization header for a request.

    Examples:
        azsigner sign GET "https://acct.blob.core.windows.net/c?comp=list" --date --api-version 2024-08-04
        azsigner sign PUT https://acct.queue.core.windows.net/q -H "x-ms-date: ..." --show-string
    """
    try:
        credentials = _load_credentials(account, key, service)
        request = _build_descriptor(method, url, header, add_date, api_version)
        string_to_sign = build_string_to_sign(credentials, request)
    except SigningError as e:
        click.echo(f"[ERROR] {e.message}", err=True)
        sys.exit(1)

    if show_string:
        click.echo("String to sign:")
        click.echo(repr(string_to_sign))
        click.echo()

    for name, value in request.headers:
        if name.lower().startswith("x-ms-"):
            click.echo(f"{name}: {value}")
    click.echo(f"Authorization: {build_authorization_header(credentials, string_to_sign)}")


@cli.command()
@_signing_options
@click.option("--authorization", "authorization", required=True, help="Authorization header value to check")
def verify(method, url, header, account, key, service, add_date, api_version, authorization):
    """
    Check an Authorization header against a request.

    Exits with status 1 if the signature does not match.
    """
    try:
        credentials = _load_credentials(account, key, service)
        request = _build_descriptor(method, url, header, add_date, api_version)
        valid = verify_signature(credentials, request, authorization)
    except SigningError as e:
        click.echo(f"[ERROR] {e.message}", err=True)
        sys.exit(1)

    if not valid:
        click.echo("[FAIL] Signature does not match", err=True)
        sys.exit(1)
    click.echo("[OK] Signature matches")


@cli.command()
@click.option("--host", default=None, help="Host to bind to (default: from config, 127.0.0.1)")
@click.option("--port", default=None, type=int, help="Port to bind to (default: from config, 3000)")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level",
)
def serve(host: Optional[str], port: Optional[int], config: Optional[Path], log_level: Optional[str]):
    """
    Run the signing relay.

    Requests to /azure/<path> carrying an x-az-service header are signed
    and forwarded to https://<account>.<service>.core.windows.net/<path>.

    Examples:
        azsigner serve
        azsigner serve --port 8080 --config azsigner.yaml
    """
    from azsigner.relay.api import create_app

    overrides = {}
    if host:
        overrides.setdefault("server", {})["host"] = host
    if port:
        overrides.setdefault("server", {})["port"] = port
    if log_level:
        overrides.setdefault("logging", {})["level"] = log_level.upper()

    try:
        settings = ConfigManager().load(
            config_file=str(config) if config else None,
            cli_overrides=overrides,
        )
    except Exception as e:
        click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
        sys.exit(1)

    setup_logging(
        level=settings.logging.level,
        format_type=settings.logging.format,
        log_file=settings.logging.file,
        rotation_size=settings.logging.rotation_size,
        rotation_count=settings.logging.rotation_count,
        module_levels=settings.logging.module_levels,
    )
    logger = logging.getLogger("azsigner.cli")
    logger.info(f"Starting azsigner relay v{__version__} on {settings.server.host}:{settings.server.port}")

    click.echo(f"Starting azsigner relay v{__version__}")
    click.echo(f"Host: {settings.server.host}:{settings.server.port}")
    click.echo(f"Route prefix: {settings.relay.route_prefix}")
    click.echo()

    try:
        uvicorn.run(
            create_app(settings),
            host=settings.server.host,
            port=settings.server.port,
            log_level=settings.logging.level.lower(),
            access_log=True,
        )
    except KeyboardInterrupt:
        click.echo("\nShutting down azsigner relay...")


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
