"""Tests for merchant groups, the global merchant dictionary and merges."""

import pytest
from datetime import date
from decimal import Decimal

from ledgerflow.domain.errors import ConflictError, NotFoundError, ValidationError
from ledgerflow.domain.merchants import MerchantNormalizer


@pytest.fixture
def merchants(temp_db):
    """Create a MerchantNormalizer with a temporary database."""
    return MerchantNormalizer(temp_db)


def add_transaction(db, user_id, description, group_id=None):
    return db.create_transaction(
        user_id=user_id,
        date=date(2024, 1, 5),
        total_amount=Decimal("-5.00"),
        description=description,
        transaction_type="expense",
        merchant_group_id=group_id,
    )


def test_new_description_gets_own_group(merchants):
    """Unknown descriptions create a group named after the merchant."""
    group = merchants.resolve_group("alice", "POS CORNER CAFE 12345678")

    assert group.display_name == "Corner Cafe"
    assert group.global_merchant_id is None
    assert merchants.resolve_group("alice", "pos corner cafe 12345678").id == group.id
    assert merchants.resolve_group("bob", "POS CORNER CAFE 12345678").id != group.id


def test_lookup_does_not_create(merchants):
    """lookup_group only finds existing groups."""
    assert merchants.lookup_group("alice", "CORNER CAFE") is None
    assert merchants.list_groups("alice") == []


def test_global_patterns_share_one_group(merchants):
    """Descriptions of one global merchant land in the same user group."""
    merchant_id = merchants.create_global_merchant("Starbucks", ("SBUX", "STARBUCKS STORE"))

    first = merchants.resolve_group("alice", "SBUX")
    second = merchants.resolve_group("alice", "Starbucks-Store")

    assert first.id == second.id
    assert first.display_name == "Starbucks"
    assert first.global_merchant_id == merchant_id


def test_resolve_fills_cache(merchants):
    """Resolved descriptions are served from the cache afterwards."""
    group = merchants.resolve_group("alice", "BAKERY ON MAIN")
    merchants.resolve_group("alice", "Bakery on Main")

    assert len(merchants.cache) == 1
    assert merchants.cache.get("alice", "bakery on main") == group.id


def test_global_merchant_validation(merchants):
    """Names must be present and unique; patterns need a merchant."""
    merchants.create_global_merchant("Starbucks")

    with pytest.raises(ValidationError):
        merchants.create_global_merchant("   ")
    with pytest.raises(ConflictError):
        merchants.create_global_merchant("Starbucks")
    with pytest.raises(NotFoundError):
        merchants.add_global_pattern(999, "SBUX")


def test_link_group_to_global(merchants):
    """Linking renames the group after the global merchant."""
    merchant_id = merchants.create_global_merchant("Starbucks", ("SBUX",))
    group = merchants.resolve_group("bob", "LOCAL BEANS")

    linked_id = merchants.link_group(group.id, merchant_id)

    assert linked_id == group.id
    linked = merchants.lookup_group("bob", "LOCAL BEANS")
    assert linked.display_name == "Starbucks"
    assert linked.global_merchant_id == merchant_id


def test_link_group_folds_into_existing(temp_db, merchants):
    """A user never ends up with two groups for one global merchant."""
    merchant_id = merchants.create_global_merchant("Starbucks", ("SBUX",))
    linked = merchants.resolve_group("alice", "SBUX")
    loose = merchants.resolve_group("alice", "LOCAL BEANS")
    txn_id = add_transaction(temp_db, "alice", "LOCAL BEANS", loose.id)

    result = merchants.link_group(loose.id, merchant_id)

    assert result == linked.id
    assert len(merchants.cache) == 0
    assert merchants.lookup_group("alice", "LOCAL BEANS").id == linked.id
    assert [g.id for g in merchants.list_groups("alice")] == [linked.id]
    assert temp_db.get_transaction(txn_id).merchant_group_id == linked.id


def test_link_group_unknown_ids(merchants):
    """Linking requires both the group and the merchant to exist."""
    merchant_id = merchants.create_global_merchant("Starbucks")
    group = merchants.resolve_group("alice", "LOCAL BEANS")

    with pytest.raises(NotFoundError):
        merchants.link_group(999, merchant_id)
    with pytest.raises(NotFoundError):
        merchants.link_group(group.id, 999)


def test_merge_global_merchants(temp_db, merchants):
    """Merging moves patterns, folds or relinks groups and resyncs transactions."""
    source = merchants.create_global_merchant("Starbucks", ("STARBUCKS 123",))
    target = merchants.create_global_merchant("Starbucks Coffee", ("SBUX",))

    alice_source = merchants.resolve_group("alice", "STARBUCKS 123")
    alice_target = merchants.resolve_group("alice", "SBUX")
    bob_source = merchants.resolve_group("bob", "STARBUCKS 123")
    alice_txn = add_transaction(temp_db, "alice", "STARBUCKS 123", alice_source.id)
    bob_txn = add_transaction(temp_db, "bob", "STARBUCKS 123", bob_source.id)
    carol_txn = add_transaction(temp_db, "carol", "Starbucks #123")

    result = merchants.merge(source, target)

    assert result == {"patterns_moved": 1, "groups_updated": 2, "transactions_resynced": 1}
    assert temp_db.get_global_merchant(source) is None
    assert temp_db.find_global_pattern("starbucks 123").global_merchant_id == target
    assert len(merchants.cache) == 0

    # Alice's source group was folded into her existing target group
    assert [g.id for g in merchants.list_groups("alice")] == [alice_target.id]
    assert temp_db.get_transaction(alice_txn).merchant_group_id == alice_target.id
    assert merchants.lookup_group("alice", "STARBUCKS 123").id == alice_target.id

    # Bob had no target group, so his group was relinked
    bob_group = temp_db.get_merchant_group(bob_source.id)
    assert bob_group.global_merchant_id == target
    assert bob_group.display_name == "Starbucks Coffee"
    assert temp_db.get_transaction(bob_txn).merchant_group_id == bob_source.id

    # Carol's unlinked transaction now points at a target group
    carol_group = temp_db.get_merchant_group(temp_db.get_transaction(carol_txn).merchant_group_id)
    assert carol_group.user_id == "carol"
    assert carol_group.global_merchant_id == target


def test_merge_validation(merchants):
    """Merges need two different, existing merchants."""
    merchant_id = merchants.create_global_merchant("Starbucks")

    with pytest.raises(ValidationError):
        merchants.merge(merchant_id, merchant_id)
    with pytest.raises(NotFoundError):
        merchants.merge(merchant_id, 999)
    with pytest.raises(NotFoundError):
        merchants.merge(999, merchant_id)


def test_display_name_for_transaction(temp_db, merchants):
    """Grouped transactions show the group name; others a derived name."""
    group = merchants.resolve_group("alice", "SBUX")
    grouped = temp_db.get_transaction(add_transaction(temp_db, "alice", "SBUX", group.id))
    loose = temp_db.get_transaction(add_transaction(temp_db, "alice", "ACH PMT CITY WATER"))

    assert merchants.display_name(grouped) == group.display_name
    assert merchants.display_name(loose) == "City Water"
