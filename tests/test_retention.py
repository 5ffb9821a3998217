from datetime import timedelta

import pytest

from clipcloud.services.retention import DEFAULT_MAX_ITEMS_PER_OWNER, RetentionPolicy
from conftest import START, make_metadata


def _items(count):
    return [make_metadata(item_id=f"i_{i:02d}", created_at=START + timedelta(seconds=i))
            for i in range(count)]


def test_default_cap():
    assert RetentionPolicy().max_items_per_owner == DEFAULT_MAX_ITEMS_PER_OWNER


def test_nothing_selected_at_or_below_cap():
    policy = RetentionPolicy(max_items_per_owner=3)

    assert policy.select_excess(_items(2)) == []
    assert policy.select_excess(_items(3)) == []
    assert not policy.exceeds(3)


def test_excess_is_oldest_first():
    policy = RetentionPolicy(max_items_per_owner=3)
    items = _items(5)

    excess = policy.select_excess(list(reversed(items)))

    assert [item.item_id for item in excess] == ["i_00", "i_01"]


def test_ties_trim_lowest_item_id_first():
    policy = RetentionPolicy(max_items_per_owner=1)
    items = [make_metadata(item_id=item_id) for item_id in ("i_b", "i_a", "i_c")]

    assert [item.item_id for item in policy.select_excess(items)] == ["i_a", "i_b"]


@pytest.mark.parametrize("cap", [0, -1])
def test_non_positive_cap_is_rejected(cap):
    with pytest.raises(ValueError):
        RetentionPolicy(max_items_per_owner=cap)
