import json
from pathlib import Path

import pytest

from .fakes import FakeChain, RecordingLayer

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def layer():
    return RecordingLayer()


@pytest.fixture(scope="session")
def golden():
    with open(FIXTURES / "golden_rounds.json") as fh:
        return json.load(fh)["cases"]
