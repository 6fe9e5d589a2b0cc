"""Shared fixtures for record store tests."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from pagestore.store import RecordStore


@pytest.fixture
def store() -> RecordStore:
    """A fresh store with default configuration.

    Returns:
        A RecordStore holding only its current job (job_id 1).
    """
    return RecordStore()


@pytest.fixture
def runner() -> CliRunner:
    """Click test runner."""
    return CliRunner()
