"""Identity generation for stored records.

Pages are identified by a fingerprint ("gid") derived from the request
fields that change what a fetch would return. Two page dicts that describe
the same request, even with differently ordered query parameters, header
values or cookie segments, must fingerprint identically.

The seed is a ``|``-joined list of ``name:value`` tokens in a fixed order::

    method | url | headers | body | no_redirect | ua_type
        [| fetch_type] [| cookie] [| http2] [| driverName] [| display]
        [| screenshot]

Bracketed tokens only appear when the field departs from its default. The
gid is ``<hostname>-<hexdigest(seed)>``.

Output identifiers are never content derived; each call returns a fresh
random digest.
"""

from __future__ import annotations

import hashlib
import json
import math
import random
import re
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any
from urllib.parse import (
    SplitResult,
    quote,
    unquote_plus,
    urlsplit,
    urlunsplit,
)

from pagestore.data_types import (
    DEFAULT_FETCH_TYPE,
    DEFAULT_UA_TYPE,
    HashAlgorithm,
)

# Characters left unescaped when re-serialising query keys and values.
# Query delimiters (& = ; + #) are always escaped so the result parses back
# to the same pairs.
_QUERY_SAFE = "!*'()/?:@$,[]"

_DEFAULT_PORTS = {"http": 80, "https": 443}

_HOST_PORT_RE = re.compile(r"^(?P<host>\[[^\]]*\]|[^:]*)(?::(?P<port>.*))?$")
_LEADING_NUMBER_RE = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")
_COOKIE_SPLIT_RE = re.compile(r";\s*")
_QUERY_SPLIT_RE = re.compile(r"[&;]")


# =============================================================================
# Value coercion
# =============================================================================


def to_text(value: Any) -> str:
    """Render a record value the way it appears inside a fingerprint seed.

    ``None`` renders empty and booleans render lowercase.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_truthy(value: Any) -> bool:
    """Only ``None`` and ``False`` count as unset flags.

    Zero, empty strings and empty containers are set flags.
    """
    return value is not None and value is not False


def _to_float(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(str(value))
    return float(match.group(0)) if match else 0.0


def deep_stringify_keys(value: Any) -> Any:
    """Return a copy of ``value`` with every mapping key turned into a str."""
    if isinstance(value, Mapping):
        return {
            key if isinstance(key, str) else str(key): deep_stringify_keys(
                item
            )
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [deep_stringify_keys(item) for item in value]
    return value


def time_stamp(
    moment: datetime | None = None,
    clock: Callable[[], datetime] | None = None,
) -> str:
    """UTC ISO-8601 timestamp with trailing fractional zeros trimmed.

    ``moment`` defaults to ``clock()``, or the current UTC time without a
    clock.

    Example::

        time_stamp(datetime(2021, 5, 23, 1, 25, 26, tzinfo=timezone.utc))
        # '2021-05-23T01:25:26Z'
    """
    if moment is None:
        moment = clock() if clock is not None else datetime.now(timezone.utc)
    text = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")
    return text.rstrip("0").rstrip(".") + "Z"


# =============================================================================
# Hashing
# =============================================================================


def hash_seed(
    seed: Any = None, algorithm: HashAlgorithm | str | None = None
) -> str:
    """Hex digest of ``seed``.

    Equal seeds give equal digests for a given algorithm. Without a seed
    the digest is taken over the current time plus a random offset, so
    the result is not reproducible.

    Raises:
        InvalidArgumentError: If ``algorithm`` is not md5, sha1 or sha256.
    """
    algorithm = HashAlgorithm.parse(algorithm)
    if seed is None:
        seed = time.time() + random.random()
    digest = hashlib.new(algorithm.value, to_text(seed).encode("utf-8"))
    return digest.hexdigest()


def output_identity(
    data: Mapping[str, Any] | None = None,
    algorithm: HashAlgorithm | str | None = None,
) -> str:
    """Fresh random identifier for an output; ``data`` is ignored."""
    return hash_seed(None, algorithm)


# =============================================================================
# Canonicalization
# =============================================================================


def _canonical_netloc(parts: SplitResult) -> str:
    userinfo, at, host_port = parts.netloc.rpartition("@")
    match = _HOST_PORT_RE.match(host_port)
    if match is None:
        return parts.netloc
    host = match.group("host").lower()
    port = match.group("port")
    netloc = f"{userinfo}{at}{host}"
    if port and port != str(_DEFAULT_PORTS.get(parts.scheme.lower(), "")):
        netloc = f"{netloc}:{port}"
    return netloc


def _canonical_query(query: str) -> str:
    grouped: dict[str, list[str]] = {}
    for pair in _QUERY_SPLIT_RE.split(query):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        grouped.setdefault(unquote_plus(key), []).append(unquote_plus(value))

    encoded = []
    for key in sorted(grouped):
        for value in grouped[key]:
            encoded.append(
                f"{quote(key, safe=_QUERY_SAFE)}="
                f"{quote(value, safe=_QUERY_SAFE)}"
            )
    return "&".join(encoded)


def clean_url_parts(raw_url: Any) -> SplitResult:
    """Split ``raw_url`` into canonical parts.

    The scheme and host are lowercased, a default port is dropped, the
    fragment is removed and query parameters are sorted by key. Path and
    query value casing are untouched.
    """
    parts = urlsplit(to_text(raw_url).strip())
    query = _canonical_query(parts.query) if parts.query else ""
    return SplitResult(
        scheme=parts.scheme.lower(),
        netloc=_canonical_netloc(parts),
        path=parts.path,
        query=query,
        fragment="",
    )


def clean_url(raw_url: Any) -> str:
    """Canonical form of ``raw_url``; applying it twice changes nothing.

    Example::

        clean_url("htTps://wwW.aBc.com/aAa?b=2&a=1#frag")
        # 'https://www.abc.com/aAa?a=1&b=2'
    """
    return urlunsplit(clean_url_parts(raw_url))


def canonical_hostname(raw_url: Any) -> str | None:
    """Lowercased hostname of ``raw_url``, or None when it has none."""
    return clean_url_parts(raw_url).hostname


def format_headers(headers: Mapping[str, Any] | None) -> str:
    """Order-independent rendering of a header mapping.

    Names are lowercased, list values are sorted and comma-joined, and the
    ``name:value`` entries are sorted and joined with ``;``.
    """
    if headers is None:
        return ""
    entries = []
    for name, value in headers.items():
        if isinstance(value, (list, tuple)):
            rendered = ",".join(sorted(to_text(item) for item in value))
        else:
            rendered = to_text(value)
        entries.append(f"{to_text(name).lower()}:{rendered}")
    return ";".join(sorted(entries))


def format_cookie(cookie: Any) -> str:
    """Sort the ``;``-separated segments of a cookie string."""
    segments = _COOKIE_SPLIT_RE.split(to_text(cookie))
    while segments and segments[-1] == "":
        segments.pop()
    return ";".join(sorted(segments))


# =============================================================================
# Emptiness predicates
# =============================================================================


def is_default_fetch_type(fetch_type: Any) -> bool:
    return fetch_type is None or fetch_type == DEFAULT_FETCH_TYPE


def is_map_empty(value: Any) -> bool:
    return not isinstance(value, Mapping) or len(value) == 0


def is_driver_empty(driver: Any) -> bool:
    """True when ``driver`` would not change how a page is fetched."""
    if not isinstance(driver, Mapping):
        return True
    for name in ("name", "code", "pre_code"):
        if to_text(driver.get(name)).strip() != "":
            return False
    if is_truthy(driver.get("stealth")):
        return False
    if is_truthy(driver.get("enable_images")):
        return False
    if not is_map_empty(driver.get("goto_options")):
        return False
    return True


def is_display_empty(display: Any) -> bool:
    """True unless width or height rounds up to a positive number."""
    if not isinstance(display, Mapping):
        return True
    for name in ("width", "height"):
        value = display.get(name)
        if value is not None and math.ceil(_to_float(value)) > 0:
            return False
    return True


def is_screenshot_empty(screenshot: Any) -> bool:
    """True unless a screenshot is requested with usable options.

    ``options`` may be missing, None or a mapping; any other value makes
    the screenshot count as empty.
    """
    if not isinstance(screenshot, Mapping):
        return True
    if not is_truthy(screenshot.get("take_screenshot")):
        return True
    options = screenshot.get("options")
    if options is not None and not isinstance(options, Mapping):
        return True
    return False


# =============================================================================
# Page fingerprint
# =============================================================================


def page_fingerprint_seed(
    page: Mapping[str, Any],
    algorithm: HashAlgorithm | str | None = None,
) -> str:
    """Build the ``|``-joined seed for a page; empty when it has no url.

    ``algorithm`` is only used to checksum the screenshot options.
    """
    url = page.get("url")
    if url is None or to_text(url).strip() == "":
        return ""

    tokens = [f"method:{to_text(page.get('method')).lower()}"]
    if is_truthy(page.get("no_url_encode")):
        tokens.append(f"url:{to_text(url).lstrip()}")
    else:
        tokens.append(f"url:{clean_url(url)}")
    tokens.append(f"headers:{format_headers(page.get('headers'))}")
    tokens.append(f"body:{to_text(page.get('body'))}")
    tokens.append(
        f"no_redirect:{to_text(is_truthy(page.get('no_redirect')))}"
    )
    ua_type = page.get("ua_type")
    if to_text(ua_type) == "":
        ua_type = DEFAULT_UA_TYPE
    tokens.append(f"ua_type:{to_text(ua_type)}")

    fetch_type = page.get("fetch_type")
    if not is_default_fetch_type(fetch_type):
        tokens.append(f"fetch_type:{to_text(fetch_type)}")
    cookie = page.get("cookie")
    if to_text(cookie).strip() != "":
        tokens.append(f"cookie:{format_cookie(cookie)}")
    if is_truthy(page.get("http2")):
        tokens.append("http2:true")

    driver = page.get("driver")
    if not is_driver_empty(driver):
        tokens.append(f"driverName:{to_text(driver.get('name'))}")
    display = page.get("display")
    if not is_display_empty(display):
        tokens.append(
            f"display:{to_text(display.get('width'))}"
            f"x{to_text(display.get('height'))}"
        )
    screenshot = page.get("screenshot")
    if not is_screenshot_empty(screenshot):
        checksum = hash_seed(
            json.dumps(screenshot, separators=(",", ":"), ensure_ascii=False),
            algorithm,
        )
        tokens.append(f"screenshot:{checksum}")
    return "|".join(tokens)


def page_fingerprint(
    page: Mapping[str, Any],
    algorithm: HashAlgorithm | str | None = None,
) -> str:
    """Compute a page gid: ``<hostname>-<digest>``.

    Returns an empty string when the page has no url. Fields not read here
    (status, timestamps, response data, vars...) never affect the gid.
    """
    seed = page_fingerprint_seed(page, algorithm)
    if seed == "":
        return ""
    hostname = canonical_hostname(page.get("url")) or ""
    return f"{hostname}-{hash_seed(seed, algorithm)}"
