"""Execution context test double backed by a RecordStore.

Scraper scripts run inside a parser, seeder or finisher context that
exposes a small set of functions (``save_pages``, ``find_outputs``...).
ExecutionContext provides those functions on top of a RecordStore so a
script can be exercised in a test and its effects asserted by querying
the store.

Example::

    store = RecordStore()
    context = ExecutionContext(ContextKind.PARSER, store, page=page)
    context.outputs.append({"title": "Dune"})
    context.flush()
    assert store.query("outputs", {"title": "Dune"})
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pagestore.common.collection import Record
from pagestore.common.exceptions import InvalidArgumentError
from pagestore.data_types import DEFAULT_COLLECTION
from pagestore.store import RecordStore

logger = logging.getLogger(__name__)


class ContextKind(Enum):
    """Kinds of script execution context."""

    PARSER = "parser"
    SEEDER = "seeder"
    FINISHER = "finisher"


EXPOSED_METHODS: dict[ContextKind, frozenset[str]] = {
    ContextKind.PARSER: frozenset(
        {
            "content",
            "failed_content",
            "outputs",
            "pages",
            "page",
            "save_pages",
            "save_outputs",
            "find_output",
            "find_outputs",
            "refetch",
            "reparse",
        }
    ),
    ContextKind.SEEDER: frozenset(
        {
            "outputs",
            "pages",
            "save_pages",
            "save_outputs",
            "find_output",
            "find_outputs",
        }
    ),
    ContextKind.FINISHER: frozenset(
        {
            "outputs",
            "save_outputs",
            "find_output",
            "find_outputs",
            "job_id",
        }
    ),
}


class ExecutionContext:
    """Parser, seeder or finisher context bound to a RecordStore.

    Attributes:
        kind: Which context this emulates.
        store: The RecordStore that saved records land in.
        pages: Pending pages, saved on flush().
        outputs: Pending outputs, saved on flush().
        page: The page being parsed (parser contexts).
        content: Response body of the page being parsed.
        failed_content: Response body of the last failed fetch.
    """

    def __init__(
        self,
        kind: ContextKind | str = ContextKind.PARSER,
        store: RecordStore | None = None,
        page: Mapping[str, Any] | None = None,
        content: str | None = None,
        failed_content: str | None = None,
    ) -> None:
        self.kind = ContextKind(kind)
        self.store = store if store is not None else RecordStore()
        self.pages: list[dict[str, Any]] = []
        self.outputs: list[dict[str, Any]] = []
        self.page = dict(page) if page is not None else None
        self.content = content
        self.failed_content = failed_content

        if self.page is not None:
            if self.page.get("job_id") is not None:
                self.store.job_id = self.page["job_id"]
            if self.page.get("gid") is not None:
                self.store.page_gid = self.page["gid"]

    def exposed_methods(self) -> frozenset[str]:
        """Names a script running in this context may call."""
        return EXPOSED_METHODS[self.kind]

    def _require(self, name: str) -> None:
        if name not in EXPOSED_METHODS[self.kind]:
            raise InvalidArgumentError(
                f"'{name}' is not available in a {self.kind.value} context",
                {
                    "method": name,
                    "kind": self.kind.value,
                    "accepted": sorted(EXPOSED_METHODS[self.kind]),
                },
            )

    @property
    def job_id(self) -> int:
        self._require("job_id")
        return self.store.job_id

    # --- Saving ---

    def save_pages(self, pages: list[dict[str, Any]]) -> list[Record]:
        """Insert ``pages`` into the store and empty the list in place."""
        self._require("save_pages")
        saved = self.store.pages.insert_many(pages)
        pages.clear()
        logger.debug("Saved %d pages", len(saved))
        return saved

    def save_outputs(self, outputs: list[dict[str, Any]]) -> list[Record]:
        """Insert ``outputs`` into the store and empty the list in place."""
        self._require("save_outputs")
        saved = self.store.outputs.insert_many(outputs)
        outputs.clear()
        logger.debug("Saved %d outputs", len(saved))
        return saved

    def flush(self) -> None:
        """Save every pending page and output."""
        if "save_pages" in EXPOSED_METHODS[self.kind]:
            self.save_pages(self.pages)
        self.save_outputs(self.outputs)

    # --- Finding ---

    def find_outputs(
        self,
        collection: str = DEFAULT_COLLECTION,
        query: Mapping[str, Any] | None = None,
        page: int = 1,
        per_page: int = 100,
    ) -> list[Record]:
        """One page of outputs from ``collection`` matching ``query``.

        Raises:
            InvalidArgumentError: If ``page`` or ``per_page`` is below 1.
        """
        self._require("find_outputs")
        if page < 1 or per_page < 1:
            raise InvalidArgumentError(
                "page and per_page must be positive",
                {"page": page, "per_page": per_page},
            )
        filters = {**(query or {}), "_collection": collection}
        return self.store.query(
            "outputs", filters, (page - 1) * per_page, per_page
        )

    def find_output(
        self,
        collection: str = DEFAULT_COLLECTION,
        query: Mapping[str, Any] | None = None,
    ) -> Record | None:
        """First output from ``collection`` matching ``query``, or None."""
        self._require("find_output")
        filters = {**(query or {}), "_collection": collection}
        found = self.store.query("outputs", filters, 0, 1)
        return found[0] if found else None

    # --- Page state ---

    def refetch(self, gid: str, job_id: int | None = None) -> Record:
        """Refetch a page of the current job (or ``job_id``)."""
        self._require("refetch")
        return self.store.refetch(
            self.store.job_id if job_id is None else job_id, gid
        )

    def reparse(self, gid: str, job_id: int | None = None) -> Record:
        """Reparse a page of the current job (or ``job_id``)."""
        self._require("reparse")
        return self.store.reparse(
            self.store.job_id if job_id is None else job_id, gid
        )
