# Ensure backend/src is on sys.path when pytest runs (from repo root or from backend dir)
import sys
from pathlib import Path

_tests_dir = Path(__file__).resolve().parent
_src = _tests_dir.parent / "src"
for _path in (str(_src), str(_tests_dir)):
    if _path not in sys.path:
        sys.path.insert(0, _path)

import pytest  # noqa: E402

from fakes import FakeClock, FakeDatabase, FakePushClient, FakeScoreClient, make_config  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def score_client():
    return FakeScoreClient()


@pytest.fixture
def push_client():
    return FakePushClient()
