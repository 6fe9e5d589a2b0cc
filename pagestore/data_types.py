"""Data types shared by the record store.

Defines the key layouts of the three stored collections, the enumerations
used for job/page status and hash algorithms, and the StoreConfig model
that a RecordStore is built from.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from pagestore.common.exceptions import InvalidArgumentError

# =============================================================================
# Collection keys
# =============================================================================

PAGE_KEYS: tuple[str, ...] = ("gid",)
OUTPUT_KEYS: tuple[str, ...] = ("_id", "_collection")
JOB_KEYS: tuple[str, ...] = ("job_id",)

DEFAULT_COLLECTION = "default"
DEFAULT_FETCH_TYPE = "standard"
DEFAULT_UA_TYPE = "desktop"
DEFAULT_SCRAPER_NAME = "my_scraper"

# Sentinel written to "*_at" fields that must read as "never happened".
EPOCH_SENTINEL = "2001-01-01T00:00:00Z"
UNFETCHED_SENTINEL = "0001-01-01T00:00:00Z"

# 30 days, used to backdate a new page's freshness.
FRESHNESS_WINDOW_SECONDS = 60 * 60 * 24 * 30


class CollectionName(Enum):
    """Collections a RecordStore can be queried on."""

    JOBS = "jobs"
    PAGES = "pages"
    OUTPUTS = "outputs"


class JobStatus(Enum):
    """Job lifecycle states.

    Values:
        ACTIVE: The store's current job.
        DONE: Any other job referenced by a page or output.
        CANCELLED: Cancelled by the caller.
        PAUSED: Paused by the caller.
    """

    ACTIVE = "active"
    DONE = "done"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class PageStatus(Enum):
    """Page processing states written by the store itself."""

    TO_FETCH = "to_fetch"
    TO_PARSE = "to_parse"
    PARSED = "parsed"


class HashAlgorithm(Enum):
    """Digest used to turn a fingerprint seed into an identifier."""

    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"

    @classmethod
    def parse(cls, value: HashAlgorithm | str | None) -> HashAlgorithm:
        """Resolve an algorithm name; ``None`` selects the default (md5).

        Raises:
            InvalidArgumentError: If ``value`` names no known algorithm.
        """
        if value is None:
            return DEFAULT_HASH_ALGORITHM
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidArgumentError(
                "Invalid UUID algorithm, valid values are "
                + ", ".join(item.value for item in cls),
                {
                    "algorithm": value,
                    "accepted": [item.value for item in cls],
                },
            ) from None


DEFAULT_HASH_ALGORITHM = HashAlgorithm.MD5


class StoreConfig(BaseModel):
    """Construction options for a RecordStore.

    Attributes:
        job_id: Current job id; generated when omitted.
        scraper_name: Current scraper name; ``my_scraper`` when omitted.
        page_gid: Back-reference given to outputs that lack one; random
            when omitted.
        allow_page_gid_override: Honor caller-supplied page gids.
        allow_job_id_override: Honor caller-supplied job ids on pages and
            outputs.
        uuid_algorithm: Digest used for fingerprints.
    """

    model_config = ConfigDict(extra="forbid")

    job_id: int | None = None
    scraper_name: str | None = None
    page_gid: str | None = None
    allow_page_gid_override: bool = False
    allow_job_id_override: bool = False
    uuid_algorithm: HashAlgorithm = DEFAULT_HASH_ALGORITHM

    @classmethod
    def from_options(cls, **options: Any) -> StoreConfig:
        """Validate ``options`` into a config.

        Calling the model directly surfaces pydantic's ``ValidationError``;
        this constructor reports bad options as ``InvalidArgumentError``.

        Raises:
            InvalidArgumentError: On an unknown algorithm (context:
                ``algorithm``, ``accepted``) or any other invalid option
                (context: ``errors``).
        """
        if "uuid_algorithm" in options:
            options["uuid_algorithm"] = HashAlgorithm.parse(
                options["uuid_algorithm"]
            )
        try:
            return cls.model_validate(options)
        except ValidationError as e:
            raise InvalidArgumentError(
                "Invalid store configuration",
                {"errors": e.errors(include_url=False)},
            ) from e

    @field_validator("uuid_algorithm", mode="before")
    @classmethod
    def _parse_algorithm(cls, value: Any) -> HashAlgorithm:
        return HashAlgorithm.parse(value)

    @field_validator(
        "allow_page_gid_override", "allow_job_id_override", mode="before"
    )
    @classmethod
    def _none_is_false(cls, value: Any) -> bool:
        return False if value is None else bool(value)
