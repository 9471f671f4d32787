"""Unit-test fixtures. Fakes live in ``fakes.py`` beside this file."""

from __future__ import annotations

import pytest
from fakes import FakeStore


@pytest.fixture
def store():
    return FakeStore()
