"""In-memory record store for jobs, pages and outputs.

RecordStore stands in for the scraping platform's database in tests. It
owns three KeyedCollections and wires their hooks so that stored records
look exactly like the ones the platform would persist:

- Pages get a content-derived gid (see pagestore.common.identity) unless
  gid overriding is enabled, and sub-objects that carry no information
  (driver, display, screenshot, headers, vars) are stored as None.
- Outputs get a random ``_id`` and default back-references to the current
  job and page.
- Inserting a page or output lazily creates the job it points at.

Queries are table scans in insertion order and are meant for test suites
only.

Example::

    store = RecordStore(job_id=10, scraper_name="books")
    store.pages.insert({"url": "https://example.com/?b=2&a=1"})
    store.outputs.insert({"title": "Dune"})
    store.query("outputs", {"_job_id": 10})
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Any

from pagestore.common.collection import (
    Computed,
    HookPoint,
    KeyedCollection,
    Record,
    Static,
    values_equal,
)
from pagestore.common.exceptions import (
    InvalidArgumentError,
    PageNotFoundError,
)
from pagestore.common.identity import (
    canonical_hostname,
    deep_stringify_keys,
    hash_seed,
    is_display_empty,
    is_driver_empty,
    is_map_empty,
    is_screenshot_empty,
    output_identity,
    page_fingerprint,
    time_stamp,
)
from pagestore.data_types import (
    DEFAULT_COLLECTION,
    DEFAULT_FETCH_TYPE,
    DEFAULT_SCRAPER_NAME,
    DEFAULT_UA_TYPE,
    EPOCH_SENTINEL,
    FRESHNESS_WINDOW_SECONDS,
    JOB_KEYS,
    OUTPUT_KEYS,
    PAGE_KEYS,
    UNFETCHED_SENTINEL,
    CollectionName,
    HashAlgorithm,
    JobStatus,
    PageStatus,
    StoreConfig,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_scraper_name() -> str:
    """Random scraper name slug."""
    return f"scraper_{uuid.uuid4().hex[:10]}"


def _plain_defaults(collection: KeyedCollection) -> dict[str, Any]:
    """Collection defaults with static values unwrapped."""
    return {
        name: (
            deepcopy(default.value) if isinstance(default, Static) else default
        )
        for name, default in collection.defaults.items()
    }


DRIVER_DEFAULTS: dict[str, Any] = {
    "name": "",
    "pre_code": "",
    "code": "",
    "goto_options": None,
    "stealth": False,
    "enable_images": False,
    "disable_adblocker": False,
}
DISPLAY_DEFAULTS: dict[str, Any] = {"width": 0, "height": 0}
SCREENSHOT_DEFAULTS: dict[str, Any] = {
    "take_screenshot": False,
    "options": None,
}

# Fields cleared by refetch, with the value each is reset to.
_REFETCH_RESETS: dict[str, Any] = {
    "fetched_from": None,
    "fetching_at": EPOCH_SENTINEL,
    "fetched_at": None,
    "fetching_try_count": 0,
    "effective_url": None,
    "parsing_at": None,
    "parsing_failed_at": None,
    "parsed_at": None,
    "parsing_try_count": 0,
    "parsing_fail_count": 0,
    "parsing_updated_at": EPOCH_SENTINEL,
    "response_checksum": None,
    "response_status": None,
    "response_status_code": None,
    "response_headers": None,
    "response_cookie": None,
    "response_proto": None,
    "content_type": None,
    "content_size": 0,
    "failed_response_status_code": None,
    "failed_response_status": None,
    "failed_response_headers": None,
    "failed_response_cookie": None,
    "failed_response_proto": None,
    "failed_response_checksum": None,
    "failed_effective_url": None,
    "failed_at": None,
    "failed_content_type": None,
}

# Fields cleared by reparse; fetch results are left alone.
_REPARSE_RESETS: dict[str, Any] = {
    "parsing_at": None,
    "parsing_failed_at": None,
    "parsing_updated_at": EPOCH_SENTINEL,
    "parsed_at": None,
    "parsing_try_count": 0,
    "parsing_fail_count": 0,
}


class RecordStore:
    """Fake platform database holding jobs, pages and outputs.

    Attributes:
        jobs: Jobs keyed by ``job_id``.
        pages: Pages keyed by ``gid``.
        outputs: Outputs keyed by ``(_id, _collection)``.
        allow_page_gid_override: Keep caller-supplied page gids (and
            output ``_gid`` back-references) instead of regenerating them.
        allow_job_id_override: Keep caller-supplied ``job_id`` on pages
            and ``_job_id`` on outputs.
    """

    def __init__(
        self,
        config: StoreConfig | None = None,
        *,
        clock: Clock | None = None,
        name_generator: Callable[[], str] | None = None,
        **options: Any,
    ) -> None:
        """Initialize the store.

        Args:
            config: Store configuration. Keyword ``options`` with the same
                field names are merged over it.
            clock: Zero-argument callable returning the current time.
            name_generator: Zero-argument callable producing scraper names
                for jobs inserted without one.

        Raises:
            InvalidArgumentError: If the configuration does not validate.
        """
        config = self._resolve_config(config, options)

        self._clock: Clock = clock or _utc_now
        self._name_generator = name_generator or generate_scraper_name
        self._job_id: int | None = None
        self._scraper_name: str | None = None
        self._page_gid: str | None = None
        self._uuid_algorithm = config.uuid_algorithm
        self.allow_page_gid_override = config.allow_page_gid_override
        self.allow_job_id_override = config.allow_job_id_override

        self.jobs = self._build_jobs()
        self.pages = self._build_pages()
        self.outputs = self._build_outputs()

        self.job_id = config.job_id
        self.scraper_name = config.scraper_name
        self.page_gid = config.page_gid

    @staticmethod
    def _resolve_config(
        config: StoreConfig | None, options: dict[str, Any]
    ) -> StoreConfig:
        if config is not None and not options:
            return config
        values = config.model_dump() if config is not None else {}
        values.update(options)
        return StoreConfig.from_options(**values)

    def __repr__(self) -> str:
        return (
            f"RecordStore(job_id={self._job_id!r}, jobs={len(self.jobs)}, "
            f"pages={len(self.pages)}, outputs={len(self.outputs)})"
        )

    # --- Current job, scraper and page ---

    @property
    def job_id(self) -> int:
        """Current job id; generated on first read when unset."""
        if self._job_id is None:
            self._job_id = self.generate_job_id()
        return self._job_id

    @job_id.setter
    def job_id(self, value: int | None) -> None:
        self._job_id = value
        job = self.ensure_job()
        logger.info("Current job set to %s", job["job_id"])

    @property
    def scraper_name(self) -> str:
        if self._scraper_name is None:
            self._scraper_name = DEFAULT_SCRAPER_NAME
        return self._scraper_name

    @scraper_name.setter
    def scraper_name(self, value: str | None) -> None:
        job = self.ensure_job()
        self._scraper_name = value
        job["scraper_name"] = self.scraper_name

    @property
    def page_gid(self) -> str:
        """Gid given to outputs inserted without a ``_gid``."""
        if self._page_gid is None:
            self._page_gid = self.generate_uuid()
        return self._page_gid

    @page_gid.setter
    def page_gid(self, value: str | None) -> None:
        self._page_gid = value

    @property
    def uuid_algorithm(self) -> HashAlgorithm:
        return self._uuid_algorithm

    @uuid_algorithm.setter
    def uuid_algorithm(self, value: HashAlgorithm | str | None) -> None:
        self._uuid_algorithm = HashAlgorithm.parse(value)

    def enable_page_gid_override(self) -> None:
        self.allow_page_gid_override = True

    def disable_page_gid_override(self) -> None:
        self.allow_page_gid_override = False

    def enable_job_id_override(self) -> None:
        self.allow_job_id_override = True

    def disable_job_id_override(self) -> None:
        self.allow_job_id_override = False

    def now(self) -> datetime:
        return self._clock()

    def time_stamp(self, moment: datetime | None = None) -> str:
        return time_stamp(moment, self._clock)

    # --- Identity ---

    def generate_uuid(self, seed: Any = None) -> str:
        """Hash ``seed`` with the configured algorithm; random if no seed."""
        return hash_seed(seed, self._uuid_algorithm)

    def generate_page_gid(self, page: Mapping[str, Any]) -> str:
        return page_fingerprint(page, self._uuid_algorithm)

    def generate_output_id(self, data: Mapping[str, Any]) -> str:
        return output_identity(data, self._uuid_algorithm)

    def generate_job_id(self) -> int:
        """One more than the highest stored job id, or 1."""
        ids = [
            job["job_id"]
            for job in self.jobs
            if isinstance(job.get("job_id"), int)
        ]
        return max(ids) + 1 if ids else 1

    def generate_scraper_name(self) -> str:
        return self._name_generator()

    # --- Jobs ---

    def ensure_job(self, target_job_id: int | None = None) -> Record:
        """Return the job with ``target_job_id``, creating it if missing.

        ``None`` targets the current job. A created job is ``active`` when
        it is the current job and ``done`` otherwise.
        """
        if target_job_id is None:
            target_job_id = self.job_id
        job = self.jobs.find_match({"job_id": target_job_id})
        if job is not None:
            return job

        job = {
            "job_id": target_job_id,
            "scraper_name": self.scraper_name,
        }
        if values_equal(target_job_id, self.job_id):
            job["status"] = JobStatus.ACTIVE.value
        logger.debug("Creating job %s", target_job_id)
        return self.jobs.insert(job)

    @property
    def job_defaults(self) -> dict[str, Any]:
        return _plain_defaults(self.jobs)

    def _build_jobs(self) -> KeyedCollection:
        collection = KeyedCollection(
            JOB_KEYS,
            defaults={
                "job_id": Computed(lambda job: self.generate_job_id()),
                "scraper_name": Computed(
                    lambda job: self.generate_scraper_name()
                ),
                "status": Static(JobStatus.DONE.value),
                "created_at": Computed(lambda job: self._clock()),
            },
        )
        collection.bind(
            HookPoint.BEFORE_DEFAULTS,
            lambda collection, raw: deep_stringify_keys(raw),
        )
        collection.bind(HookPoint.BEFORE_INSERT, self._before_job_insert)
        return collection

    def _before_job_insert(
        self, collection: KeyedCollection, job: Record, match: Record | None
    ) -> Record:
        if job.get("job_id") is None:
            job["job_id"] = self.generate_job_id()
        return job

    # --- Pages ---

    @property
    def page_defaults(self) -> dict[str, Any]:
        return _plain_defaults(self.pages)

    def _page_defaults(self) -> dict[str, Any]:
        return {
            "job_id": Computed(lambda page: self.job_id),
            "url": None,
            "status": PageStatus.TO_FETCH.value,
            "page_type": "default",
            "method": "GET",
            "headers": {},
            "fetch_type": DEFAULT_FETCH_TYPE,
            "cookie": None,
            "no_redirect": False,
            "body": None,
            "ua_type": DEFAULT_UA_TYPE,
            "no_url_encode": False,
            "http2": False,
            "priority": 0,
            "hostname": None,
            "freshness": None,
            "fresh": None,
            "to_fetch": None,
            "created_at": None,
            "parsing_try_count": 0,
            "parsing_fail_count": 0,
            "fetching_at": UNFETCHED_SENTINEL,
            "fetching_try_count": 0,
            "refetch_count": 0,
            "fetched_from": "",
            "fetched_at": None,
            "effective_url": None,
            "content_size": 0,
            "content_type": None,
            "force_fetch": False,
            "no_default_headers": False,
            "proxy_type": "",
            "max_size": 0,
            "enable_global_cache": None,
            "retry_interval": None,
            "parsing_at": None,
            "parsing_failed_at": None,
            "parsed_at": None,
            "response_checksum": None,
            "response_status": None,
            "response_status_code": None,
            "response_headers": None,
            "response_cookie": None,
            "response_proto": None,
            "failed_response_checksum": None,
            "failed_response_status": None,
            "failed_response_status_code": None,
            "failed_response_headers": None,
            "failed_response_cookie": None,
            "failed_response_proto": None,
            "failed_effective_url": None,
            "failed_at": None,
            "failed_content_type": None,
            "driver": dict(DRIVER_DEFAULTS),
            "display": dict(DISPLAY_DEFAULTS),
            "screenshot": dict(SCREENSHOT_DEFAULTS),
            "driver_log": None,
            "vars": {},
        }

    def _build_pages(self) -> KeyedCollection:
        collection = KeyedCollection(PAGE_KEYS, defaults=self._page_defaults())
        collection.bind(HookPoint.BEFORE_DEFAULTS, self._before_page_defaults)
        collection.bind(HookPoint.BEFORE_INSERT, self._before_page_insert)
        collection.bind(
            HookPoint.AFTER_INSERT,
            lambda collection, page: self.ensure_job(page["job_id"]),
        )
        return collection

    def _before_page_defaults(
        self, collection: KeyedCollection, raw: Record
    ) -> Record:
        page = deep_stringify_keys(raw)
        for name, defaults in (
            ("driver", DRIVER_DEFAULTS),
            ("display", DISPLAY_DEFAULTS),
            ("screenshot", SCREENSHOT_DEFAULTS),
        ):
            if isinstance(page.get(name), Mapping):
                page[name] = {**defaults, **page[name]}
        if not self.allow_job_id_override:
            page.pop("job_id", None)
        return page

    def _before_page_insert(
        self, collection: KeyedCollection, page: Record, match: Record | None
    ) -> Record:
        if is_driver_empty(page.get("driver")):
            page["driver"] = None
        if is_display_empty(page.get("display")):
            page["display"] = None
        if is_screenshot_empty(page.get("screenshot")):
            page["screenshot"] = None
        if is_map_empty(page.get("headers")):
            page["headers"] = None
        if is_map_empty(page.get("vars")):
            page["vars"] = None

        page["hostname"] = canonical_hostname(page.get("url"))
        if page.get("gid") is None or not self.allow_page_gid_override:
            page["gid"] = self.generate_page_gid(page)
            logger.debug("Generated gid %s for %s", page["gid"], page["url"])

        now = self._clock()
        if page.get("freshness") is None:
            page["freshness"] = time_stamp(
                now - timedelta(seconds=FRESHNESS_WINDOW_SECONDS)
            )
        if page.get("to_fetch") is None:
            page["to_fetch"] = time_stamp(now)
        if page.get("created_at") is None:
            page["created_at"] = time_stamp(now)
        return page

    # --- Outputs ---

    @property
    def output_defaults(self) -> dict[str, Any]:
        return _plain_defaults(self.outputs)

    def _build_outputs(self) -> KeyedCollection:
        collection = KeyedCollection(
            OUTPUT_KEYS,
            defaults={
                "_collection": Static(DEFAULT_COLLECTION),
                "_job_id": Computed(lambda output: self.job_id),
                "_created_at": Computed(lambda output: self.time_stamp()),
                "_gid": Computed(lambda output: self.page_gid),
            },
        )
        collection.bind(
            HookPoint.BEFORE_DEFAULTS, self._before_output_defaults
        )
        collection.bind(HookPoint.BEFORE_INSERT, self._before_output_insert)
        collection.bind(
            HookPoint.AFTER_INSERT,
            lambda collection, output: self.ensure_job(output["_job_id"]),
        )
        return collection

    def _before_output_defaults(
        self, collection: KeyedCollection, raw: Record
    ) -> Record:
        output = deep_stringify_keys(raw)
        if not self.allow_job_id_override:
            output.pop("_job_id", None)
        if not self.allow_page_gid_override:
            output.pop("_gid", None)
        return output

    def _before_output_insert(
        self,
        collection: KeyedCollection,
        output: Record,
        match: Record | None,
    ) -> Record:
        if output.get("_id") is None:
            output["_id"] = self.generate_output_id(output)
        return output

    # --- Query ---

    def collection(self, name: CollectionName | str) -> KeyedCollection:
        """Collection called ``name``.

        Raises:
            InvalidArgumentError: On an unknown collection name.
        """
        try:
            key = CollectionName(
                name.value if isinstance(name, CollectionName) else name
            )
        except ValueError:
            raise InvalidArgumentError(
                f"Unknown collection {name}.",
                {
                    "collection": name,
                    "accepted": [item.value for item in CollectionName],
                },
            ) from None
        return {
            CollectionName.JOBS: self.jobs,
            CollectionName.PAGES: self.pages,
            CollectionName.OUTPUTS: self.outputs,
        }[key]

    @staticmethod
    def match(data: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
        """True when every filter value equals ``data``'s value.

        A filter value of None also matches a missing field.
        """
        return all(
            values_equal(data.get(key), value)
            for key, value in filters.items()
        )

    def query(
        self,
        collection: CollectionName | str,
        filters: Mapping[str, Any] | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Record]:
        """Scan a collection in insertion order.

        Args:
            collection: ``jobs``, ``pages`` or ``outputs``.
            filters: Field equality filters; empty matches everything.
            offset: Number of matches to skip.
            limit: Maximum matches to return; None for no limit.

        Returns:
            The stored records (not copies) that matched.

        Raises:
            InvalidArgumentError: On an unknown collection name, unless
                ``limit`` is zero or negative.
        """
        if limit is not None and limit <= 0:
            return []
        items = self.collection(collection)

        filters = filters or {}
        count = 0
        matches: list[Record] = []
        for item in items:
            if not self.match(item, filters):
                continue
            count += 1
            if count <= offset:
                continue
            if limit is not None and len(matches) >= limit:
                break
            matches.append(item)
        return matches

    # --- Page state changes ---

    def find_page(self, job_id: Any, gid: Any) -> Record:
        """Stored page with ``gid`` belonging to ``job_id``.

        Raises:
            PageNotFoundError: If no such page is stored.
        """
        page = self.pages.find_match({"gid": gid})
        if page is None or not values_equal(page.get("job_id"), job_id):
            raise PageNotFoundError(job_id, gid)
        return page

    def refetch(self, job_id: Any, gid: Any) -> Record:
        """Put a page back in the fetch queue, dropping fetch and parse data.

        Raises:
            PageNotFoundError: If no such page is stored.
        """
        page = self.find_page(job_id, gid)
        now = self.time_stamp()
        page["status"] = PageStatus.TO_FETCH.value
        page["freshness"] = now
        page["to_fetch"] = now
        page.update(_REFETCH_RESETS)
        logger.info("Refetching page %s of job %s", gid, job_id)
        return page

    def reparse(self, job_id: Any, gid: Any) -> Record:
        """Put a page back in the parse queue, keeping its fetch results.

        Raises:
            PageNotFoundError: If no such page is stored.
        """
        page = self.find_page(job_id, gid)
        page["status"] = PageStatus.TO_PARSE.value
        page.update(_REPARSE_RESETS)
        logger.info("Reparsing page %s of job %s", gid, job_id)
        return page


# =============================================================================
# Builders
# =============================================================================


def build_page(page: Mapping[str, Any], **options: Any) -> Record:
    """Fully defaulted page built through a throwaway store.

    Gid and job id overrides are enabled unless ``options`` says otherwise.
    """
    options = {
        "allow_page_gid_override": True,
        "allow_job_id_override": True,
        **options,
    }
    store = RecordStore(**options)
    return store.pages.insert(page)


def build_fake_page(
    url: str = "https://example.com", **options: Any
) -> Record:
    return build_page({"url": url}, **options)


def build_job(job: Mapping[str, Any], **options: Any) -> Record:
    """Fully defaulted job built through a throwaway store."""
    store = RecordStore(**options)
    return store.jobs.insert(job)


def build_fake_job(
    job_id: int | None = None,
    scraper_name: str | None = None,
    status: str = JobStatus.DONE.value,
    **options: Any,
) -> Record:
    return build_job(
        {"job_id": job_id, "scraper_name": scraper_name, "status": status},
        **options,
    )
