import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
if SRC.exists():
    sys.path.insert(0, str(SRC))

# Register shared Hypothesis profiles for deterministic CI runs and fast local loops.
from tests.util import hypothesis_profiles  # noqa: E402,F401  pylint: disable=unused-import
from tests.util.helpers import Key  # noqa: E402
from weaklockfree import InlineExpunction, ManualExpunction, WeakConcurrentMap  # noqa: E402


@pytest.fixture(name="threaded_map")
def threaded_map_fixture() -> Iterator[WeakConcurrentMap[Key, object]]:
    m: WeakConcurrentMap[Key, object] = WeakConcurrentMap(cleaner_thread=True)
    try:
        yield m
    finally:
        m.close()


@pytest.fixture(name="inline_map")
def inline_map_fixture() -> WeakConcurrentMap[Key, object]:
    return WeakConcurrentMap(strategy=InlineExpunction())


@pytest.fixture(name="manual_map")
def manual_map_fixture() -> WeakConcurrentMap[Key, object]:
    return WeakConcurrentMap(strategy=ManualExpunction())


@pytest.fixture(name="any_map", params=["thread", "inline", "manual"])
def any_map_fixture(request: pytest.FixtureRequest) -> Iterator[WeakConcurrentMap[Key, object]]:
    m: WeakConcurrentMap[Key, object]
    if request.param == "thread":
        m = WeakConcurrentMap(cleaner_thread=True)
    elif request.param == "inline":
        m = WeakConcurrentMap.with_inlined_expunction()
    else:
        m = WeakConcurrentMap(cleaner_thread=False)
    try:
        yield m
    finally:
        m.close()


def pytest_configure(config: pytest.Config) -> None:
    """Ensure custom marks remain registered even when pytest.ini isn't picked up."""
    config.addinivalue_line("markers", "stress: multi-threaded stress runs")
