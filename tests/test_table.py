from __future__ import annotations

import threading
from typing import Dict

import pytest
from hypothesis import given, strategies as st

from tests.util.helpers import Key
from weaklockfree.core.keys import wrap_key
from weaklockfree.core.table import StripedTable


def test_stripes_must_be_power_of_two() -> None:
    with pytest.raises(ValueError):
        StripedTable(3)
    with pytest.raises(ValueError):
        StripedTable(0)
    assert StripedTable(8).stripes == 8


def test_put_returns_previous_and_remove_returns_value() -> None:
    table: StripedTable[str, int] = StripedTable(4)
    assert table.put("a", 1) is None
    assert table.put("a", 2) == 1
    assert table.get("a") == 2
    assert table.contains("a")
    assert table.remove("a") == 2
    assert table.remove("a") is None
    assert not table.contains("a")


def test_len_and_clear_span_all_stripes() -> None:
    table: StripedTable[int, int] = StripedTable(4)
    for i in range(100):
        table.put(i, i)
    assert len(table) == 100
    assert table.max_segment_len() >= 25
    table.clear()
    assert len(table) == 0


def test_identity_hashed_keys_spread_across_stripes() -> None:
    # Objects allocated back to back have ids that differ only in a few bits.
    keys = [Key(i) for i in range(1000)]
    table: StripedTable[object, int] = StripedTable(16)
    for i, key in enumerate(keys):
        table.put(wrap_key(key), i)
    assert len(table) == 1000
    # An even spread puts about 62 keys in each stripe.
    assert table.max_segment_len() < 200


def test_single_stripe_table_holds_everything() -> None:
    table: StripedTable[int, int] = StripedTable(1)
    for i in range(-50, 50):
        table.put(i, i)
    assert table.max_segment_len() == len(table) == 100


def test_concurrent_writers_do_not_lose_distinct_keys() -> None:
    table: StripedTable[int, int] = StripedTable(8)
    barrier = threading.Barrier(4)

    def writer(offset: int) -> None:
        barrier.wait()
        for i in range(500):
            table.put(offset * 1000 + i, i)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(table) == 2000


@given(
    st.lists(
        st.tuples(st.sampled_from(["put", "get", "remove"]), st.integers(-20, 20), st.integers()),
        max_size=60,
    )
)
def test_table_matches_python_dict(operations: list[tuple[str, int, int]]) -> None:
    table: StripedTable[int, int] = StripedTable(4)
    model: Dict[int, int] = {}
    for op, key, value in operations:
        if op == "put":
            assert table.put(key, value) == model.get(key)
            model[key] = value
        elif op == "remove":
            assert table.remove(key) == model.pop(key, None)
        else:
            assert table.get(key) == model.get(key)
        assert len(table) == len(model)
