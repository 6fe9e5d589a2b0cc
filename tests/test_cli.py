"""Tests for the pagestore command line interface."""

from __future__ import annotations

import json

from click.testing import CliRunner

from pagestore.cli import cli
from pagestore.common.identity import page_fingerprint


class TestCleanUrlCommand:
    """Tests for the clean-url command."""

    def test_clean_url(self, runner: CliRunner) -> None:
        """Test clean-url prints the canonical URL."""
        result = runner.invoke(
            cli, ["clean-url", "htTps://wwW.aBc.com/aAa?b=2&a=1#frag"]
        )

        assert result.exit_code == 0
        assert result.output == "https://www.abc.com/aAa?a=1&b=2\n"


class TestGidCommand:
    """Tests for the gid command."""

    def test_gid_matches_fingerprint(self, runner: CliRunner) -> None:
        """Test gid prints the same gid the store would compute."""
        result = runner.invoke(cli, ["gid", "--url", "https://www.abc.com"])

        assert result.exit_code == 0
        assert result.output.strip() == (
            "www.abc.com-54a7013bdad6cf29c37909b466d58c95"
        )

    def test_gid_ignores_query_order(self, runner: CliRunner) -> None:
        """Test gid is stable across query parameter order."""
        first = runner.invoke(
            cli, ["gid", "--url", "https://abc.com/?a=1&b=2"]
        )
        second = runner.invoke(
            cli, ["gid", "--url", "https://abc.com/?b=2&a=1"]
        )

        assert first.exit_code == 0
        assert first.output == second.output

    def test_gid_with_headers_and_driver(self, runner: CliRunner) -> None:
        """Test gid passes headers and driver name through."""
        result = runner.invoke(
            cli,
            [
                "gid",
                "--url",
                "https://abc.com",
                "--header",
                "Accept:b",
                "--header",
                "Accept:a",
                "--driver-name",
                "chrome",
            ],
        )
        expected = page_fingerprint(
            {
                "url": "https://abc.com",
                "method": "GET",
                "headers": {"Accept": ["a", "b"]},
                "fetch_type": "standard",
                "ua_type": "desktop",
                "driver": {"name": "chrome"},
            }
        )

        assert result.exit_code == 0
        assert result.output.strip() == expected

    def test_gid_algorithm(self, runner: CliRunner) -> None:
        """Test --algorithm selects the digest."""
        result = runner.invoke(
            cli, ["gid", "--url", "https://abc.com", "--algorithm", "sha256"]
        )

        assert result.exit_code == 0
        digest = result.output.strip().split("-", 1)[1]
        assert len(digest) == 64

    def test_invalid_header(self, runner: CliRunner) -> None:
        """Test a header without a separator is rejected."""
        result = runner.invoke(
            cli, ["gid", "--url", "https://abc.com", "--header", "nocolon"]
        )

        assert result.exit_code != 0
        assert "NAME:VALUE" in result.output

    def test_invalid_display(self, runner: CliRunner) -> None:
        """Test a malformed display is rejected."""
        result = runner.invoke(
            cli, ["gid", "--url", "https://abc.com", "--display", "wide"]
        )

        assert result.exit_code != 0
        assert "WIDTHxHEIGHT" in result.output


class TestBuildPageCommand:
    """Tests for the build-page command."""

    def test_build_page(self, runner: CliRunner) -> None:
        """Test build-page prints a defaulted page as JSON."""
        result = runner.invoke(
            cli,
            [
                "build-page",
                "--url",
                "https://abc.com/x",
                "--method",
                "POST",
                "--display",
                "800x600",
            ],
        )

        assert result.exit_code == 0
        page = json.loads(result.output)
        assert page["url"] == "https://abc.com/x"
        assert page["method"] == "POST"
        assert page["hostname"] == "abc.com"
        assert page["status"] == "to_fetch"
        assert page["display"] == {"width": 800, "height": 600}
        assert page["headers"] is None
        assert page["gid"].startswith("abc.com-")

    def test_table_format(self, runner: CliRunner) -> None:
        """Test build-page can print one field per line."""
        result = runner.invoke(
            cli,
            ["build-page", "--url", "https://abc.com", "--format", "table"],
        )

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert any(
            line.startswith("hostname") and line.endswith('"abc.com"')
            for line in lines
        )

    def test_verbose(self, runner: CliRunner) -> None:
        """Test the verbose flag is accepted before a command."""
        result = runner.invoke(
            cli, ["-v", "build-page", "--url", "https://abc.com"]
        )

        assert result.exit_code == 0
