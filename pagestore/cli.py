"""Pagestore CLI: inspect how pages are canonicalized and fingerprinted.

Usage:
    pagestore clean-url URL                         # Canonical form of URL
    pagestore gid --url URL                         # Page gid for a request
    pagestore gid --url URL --header "Accept:*/*"   # ...with headers
    pagestore build-page --url URL                  # Fully defaulted page
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import click

from pagestore.common.exceptions import StoreException
from pagestore.common.identity import clean_url
from pagestore.data_types import (
    DEFAULT_FETCH_TYPE,
    DEFAULT_UA_TYPE,
    HashAlgorithm,
)
from pagestore.store import RecordStore, build_page


def parse_headers(values: tuple[str, ...]) -> dict[str, Any]:
    """Turn repeated ``NAME:VALUE`` options into a header mapping.

    A name given more than once collects its values into a list.

    Raises:
        click.BadParameter: If an entry has no ``:`` separator.
    """
    headers: dict[str, Any] = {}
    for entry in values:
        name, sep, value = entry.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(
                f"Invalid header '{entry}'. Expected format: 'NAME:VALUE'",
                param_hint="--header",
            )
        name, value = name.strip(), value.strip()
        if name in headers:
            existing = headers[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                headers[name] = [existing, value]
        else:
            headers[name] = value
    return headers


def parse_display(value: str | None) -> dict[str, int] | None:
    """Parse ``WIDTHxHEIGHT`` into a display mapping."""
    if value is None:
        return None
    width, sep, height = value.lower().partition("x")
    if not sep or not width.isdigit() or not height.isdigit():
        raise click.BadParameter(
            f"Invalid display '{value}'. Expected format: 'WIDTHxHEIGHT'",
            param_hint="--display",
        )
    return {"width": int(width), "height": int(height)}


def page_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the request-describing options shared by gid and build-page."""
    options = [
        click.option("--url", required=True, help="Page URL."),
        click.option(
            "--method", default="GET", show_default=True, help="HTTP method."
        ),
        click.option(
            "--header",
            "headers",
            multiple=True,
            help="Request header as NAME:VALUE. May be repeated.",
        ),
        click.option("--cookie", default=None, help="Cookie header value."),
        click.option("--body", default=None, help="Request body."),
        click.option(
            "--fetch-type",
            default=DEFAULT_FETCH_TYPE,
            show_default=True,
            help="Fetch type, e.g. standard or browser.",
        ),
        click.option(
            "--ua-type",
            default=DEFAULT_UA_TYPE,
            show_default=True,
            help="User agent type.",
        ),
        click.option(
            "--no-redirect", is_flag=True, help="Do not follow redirects."
        ),
        click.option(
            "--no-url-encode",
            is_flag=True,
            help="Use the URL as given instead of canonicalizing it.",
        ),
        click.option("--http2", is_flag=True, help="Fetch over HTTP/2."),
        click.option(
            "--driver-name", default=None, help="Browser driver name."
        ),
        click.option(
            "--display", default=None, help="Browser display as WxH."
        ),
        click.option(
            "--algorithm",
            type=click.Choice([item.value for item in HashAlgorithm]),
            default=HashAlgorithm.MD5.value,
            show_default=True,
            help="Digest used for the gid.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _page_from_options(
    url: str,
    method: str,
    headers: tuple[str, ...],
    cookie: str | None,
    body: str | None,
    fetch_type: str,
    ua_type: str,
    no_redirect: bool,
    no_url_encode: bool,
    http2: bool,
    driver_name: str | None,
    display: str | None,
) -> dict[str, Any]:
    page: dict[str, Any] = {
        "url": url,
        "method": method,
        "headers": parse_headers(headers),
        "cookie": cookie,
        "body": body,
        "fetch_type": fetch_type,
        "ua_type": ua_type,
        "no_redirect": no_redirect,
        "no_url_encode": no_url_encode,
        "http2": http2,
    }
    if driver_name is not None:
        page["driver"] = {"name": driver_name}
    parsed_display = parse_display(display)
    if parsed_display is not None:
        page["display"] = parsed_display
    return page


@click.group()
@click.version_option(package_name="pagestore")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def cli(verbose: bool) -> None:
    """Pagestore: fake scraping database CLI."""
    log_level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("pagestore").setLevel(log_level)


@cli.command("clean-url")
@click.argument("url")
def clean_url_command(url: str) -> None:
    """Print the canonical form of URL."""
    click.echo(clean_url(url))


@cli.command()
@page_options
def gid(algorithm: str, **fields: Any) -> None:
    """Print the gid a page with these request fields would get."""
    page = _page_from_options(**fields)
    try:
        store = RecordStore(uuid_algorithm=algorithm)
        click.echo(store.generate_page_gid(page))
    except StoreException as e:
        raise click.ClickException(str(e)) from e


@cli.command("build-page")
@page_options
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "table"]),
    default="json",
    show_default=True,
    help="Output format.",
)
def build_page_command(
    algorithm: str, output_format: str, **fields: Any
) -> None:
    """Print a fully defaulted page record."""
    page = _page_from_options(**fields)
    try:
        record = build_page(page, uuid_algorithm=algorithm)
    except StoreException as e:
        raise click.ClickException(str(e)) from e

    if output_format == "json":
        click.echo(json.dumps(record, indent=2, default=str))
        return
    width = max(len(name) for name in record)
    for name in sorted(record):
        value = json.dumps(record[name], default=str)
        click.echo(f"{name:<{width}}  {value}")


if __name__ == "__main__":
    cli()
