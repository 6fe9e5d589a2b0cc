"""Tests for ExecutionContext.

Key behaviors tested:
- Each context kind exposes its own set of functions
- Calling a function outside the exposed set raises InvalidArgumentError
- save_pages/save_outputs store records and empty the caller's list
- find_output/find_outputs page through one output collection
- A parser context adopts the job and gid of the page it parses
"""

from __future__ import annotations

import pytest

from pagestore.common.exceptions import InvalidArgumentError
from pagestore.context import ContextKind, ExecutionContext
from pagestore.store import RecordStore


class TestExposedMethods:
    """Tests for per-kind function exposure."""

    def test_parser_methods(self) -> None:
        """A parser shall expose page handling and state changes."""
        context = ExecutionContext(ContextKind.PARSER)

        assert context.exposed_methods() == {
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

    def test_seeder_methods(self) -> None:
        """A seeder shall expose saving and finding but no page state."""
        context = ExecutionContext("seeder")

        assert context.exposed_methods() == {
            "outputs",
            "pages",
            "save_pages",
            "save_outputs",
            "find_output",
            "find_outputs",
        }

    def test_finisher_methods(self) -> None:
        """A finisher shall expose outputs and the job id only."""
        context = ExecutionContext(ContextKind.FINISHER)

        assert context.exposed_methods() == {
            "outputs",
            "save_outputs",
            "find_output",
            "find_outputs",
            "job_id",
        }
        assert context.job_id == context.store.job_id

    def test_finisher_cannot_save_pages(self) -> None:
        """A finisher calling save_pages shall raise InvalidArgumentError."""
        context = ExecutionContext(ContextKind.FINISHER)

        with pytest.raises(InvalidArgumentError) as exc_info:
            context.save_pages([{"url": "https://abc.com"}])

        assert exc_info.value.context["method"] == "save_pages"
        assert exc_info.value.context["kind"] == "finisher"

    def test_seeder_cannot_refetch(self) -> None:
        """A seeder calling refetch shall raise InvalidArgumentError."""
        context = ExecutionContext(ContextKind.SEEDER)

        with pytest.raises(InvalidArgumentError):
            context.refetch("gid")

    def test_parser_cannot_read_job_id(self) -> None:
        """A parser reading job_id shall raise InvalidArgumentError."""
        context = ExecutionContext(ContextKind.PARSER)

        with pytest.raises(InvalidArgumentError):
            context.job_id

    def test_unknown_kind(self) -> None:
        """An unknown context kind shall be rejected."""
        with pytest.raises(ValueError):
            ExecutionContext("crawler")


class TestSaving:
    """Tests for saving buffered records."""

    def test_save_pages_clears_list(self, store: RecordStore) -> None:
        """save_pages shall store the pages and empty the given list."""
        context = ExecutionContext(ContextKind.SEEDER, store)
        context.pages.append({"url": "https://abc.com/a"})
        context.pages.append({"url": "https://abc.com/b"})
        pages = context.pages

        saved = context.save_pages(context.pages)

        assert len(saved) == 2
        assert pages == []
        assert context.pages is pages
        assert len(store.pages) == 2

    def test_save_outputs_clears_list(self, store: RecordStore) -> None:
        """save_outputs shall store the outputs and empty the given list."""
        context = ExecutionContext(ContextKind.FINISHER, store)
        outputs = [{"title": "Dune"}]

        context.save_outputs(outputs)

        assert outputs == []
        assert store.outputs[0]["title"] == "Dune"

    def test_flush(self, store: RecordStore) -> None:
        """flush shall save both buffers."""
        context = ExecutionContext(ContextKind.SEEDER, store)
        context.pages.append({"url": "https://abc.com"})
        context.outputs.append({"title": "Dune"})

        context.flush()

        assert context.pages == []
        assert context.outputs == []
        assert len(store.pages) == 1
        assert len(store.outputs) == 1

    def test_finisher_flush_saves_outputs_only(
        self, store: RecordStore
    ) -> None:
        """A finisher flush shall save outputs and never touch pages."""
        context = ExecutionContext(ContextKind.FINISHER, store)
        context.outputs.append({"title": "Dune"})

        context.flush()

        assert len(store.outputs) == 1
        assert len(store.pages) == 0


class TestFinding:
    """Tests for finding outputs."""

    @pytest.fixture
    def context(self, store: RecordStore) -> ExecutionContext:
        context = ExecutionContext(ContextKind.SEEDER, store)
        for index in range(5):
            context.outputs.append({"n": index, "kind": "book"})
        context.outputs.append({"n": 99, "_collection": "authors"})
        context.flush()
        return context

    def test_find_outputs_default_collection(
        self, context: ExecutionContext
    ) -> None:
        """find_outputs shall search the default collection."""
        found = context.find_outputs()

        assert [output["n"] for output in found] == [0, 1, 2, 3, 4]

    def test_find_outputs_paging(self, context: ExecutionContext) -> None:
        """page and per_page shall select a window of matches."""
        found = context.find_outputs("default", {"kind": "book"}, 2, 2)

        assert [output["n"] for output in found] == [2, 3]

    def test_find_outputs_other_collection(
        self, context: ExecutionContext
    ) -> None:
        """find_outputs shall only search the named collection."""
        found = context.find_outputs("authors")

        assert [output["n"] for output in found] == [99]

    def test_find_outputs_invalid_page(
        self, context: ExecutionContext
    ) -> None:
        """A page below 1 shall raise InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError):
            context.find_outputs(page=0)

    def test_find_output(self, context: ExecutionContext) -> None:
        """find_output shall return the first match or None."""
        assert context.find_output(query={"n": 3})["n"] == 3
        assert context.find_output(query={"n": 42}) is None


class TestParserPage:
    """Tests for a parser bound to a page."""

    def test_adopts_page_job_and_gid(self) -> None:
        """The store shall take the job id and gid of the parsed page."""
        store = RecordStore()
        context = ExecutionContext(
            ContextKind.PARSER,
            store,
            page={"gid": "abc.com-1", "job_id": 7},
            content="<html></html>",
        )
        context.outputs.append({"title": "Dune"})
        context.flush()

        assert store.job_id == 7
        assert store.page_gid == "abc.com-1"
        assert context.content == "<html></html>"
        assert store.outputs[0]["_gid"] == "abc.com-1"
        assert store.outputs[0]["_job_id"] == 7

    def test_refetch_and_reparse(self, store: RecordStore) -> None:
        """A parser shall refetch and reparse pages of its job."""
        page = store.pages.insert({"url": "https://abc.com"})
        context = ExecutionContext(ContextKind.PARSER, store, page=page)

        assert context.refetch(page["gid"])["status"] == "to_fetch"
        assert context.reparse(page["gid"])["status"] == "to_parse"
