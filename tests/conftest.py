from __future__ import annotations

import pytest
from fakes import FakeEmbedder, FakeQdrant


@pytest.fixture
def fake_qdrant() -> FakeQdrant:
    return FakeQdrant()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
