"""
Shared pytest fixtures and configuration.

conftest.py is auto-loaded by pytest — fixtures defined here are available
to all test files without explicit imports.
"""

import os
import sys

import pytest

# Add the service directory to the path so tests can import service modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "service"))

from orchestration.leader import Leader  # noqa: E402


@pytest.fixture
def leader():
    return Leader()


@pytest.fixture
def person():
    return {"email": "ilya@segment.io"}


@pytest.fixture
def events(leader):
    """Every event the leader emits, as (name, args) tuples in order."""
    seen = []
    leader.on("*", lambda event, *args: seen.append((event, args)))
    return seen
