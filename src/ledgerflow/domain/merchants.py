"""Merchant normalization: stable merchant identities for descriptions."""

import threading
from typing import Optional

from ledgerflow.database.base import Database
from ledgerflow.domain.entities import GlobalMerchant, MerchantGroup, Transaction
from ledgerflow.domain.errors import ConflictError, NotFoundError, ValidationError
from ledgerflow.logging_setup import get_logger
from ledgerflow.utils.text import merchant_display_name, normalize_description

logger = get_logger("ledgerflow.domain.merchants")


class MerchantCache:
    """Read-through cache of (user, normalized description) to merchant group ID.

    Owned by a MerchantNormalizer and cleared whenever a merge moves patterns.
    """

    def __init__(self):
        self._entries: dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str, normalized: str) -> Optional[int]:
        with self._lock:
            return self._entries.get((user_id, normalized))

    def put(self, user_id: str, normalized: str, group_id: int) -> None:
        with self._lock:
            self._entries[(user_id, normalized)] = group_id

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class MerchantNormalizer:
    """Clusters descriptions into per-user merchant groups."""

    def __init__(self, db: Database, cache: Optional[MerchantCache] = None):
        """Initialize merchant normalizer.

        Args:
            db: Database instance
            cache: Lookup cache; a private one is created when None
        """
        self.db = db
        self.cache = cache if cache is not None else MerchantCache()
        # Serializes group creation against merges in this process
        self._lock = threading.RLock()

    @staticmethod
    def pattern_key(description: str) -> str:
        """Normalized form a description is matched on."""
        return normalize_description(description) or description.strip().lower()

    def lookup_group(self, user_id: str, description: str) -> Optional[MerchantGroup]:
        """Find the user's group for a description without creating one."""
        normalized = self.pattern_key(description)
        cached = self.cache.get(user_id, normalized)
        if cached is not None:
            group = self.db.get_merchant_group(cached)
            if group is not None:
                return group

        pattern = self.db.find_merchant_pattern(user_id, normalized)
        if pattern is None:
            return None
        self.cache.put(user_id, normalized, pattern.merchant_group_id)
        return self.db.get_merchant_group(pattern.merchant_group_id)

    def resolve_group(self, user_id: str, description: str) -> MerchantGroup:
        """Return the user's merchant group for a description, creating it if needed.

        The user's own patterns win. A pattern known to the global dictionary
        maps to the user's group for that global merchant, which is created
        and linked on first use. Anything else gets a fresh group.

        Args:
            user_id: Owner of the group
            description: Raw transaction description

        Returns:
            MerchantGroup
        """
        with self._lock:
            group = self.lookup_group(user_id, description)
            if group is not None:
                return group

            normalized = self.pattern_key(description)
            with self.db.unit_of_work():
                global_pattern = self.db.find_global_pattern(normalized)
                if global_pattern is not None:
                    group_id = self._group_for_global(user_id, global_pattern.global_merchant_id)
                else:
                    group_id = self.db.create_merchant_group(
                        user_id=user_id, display_name=merchant_display_name(description)
                    )
                self.db.add_merchant_pattern(user_id, group_id, description.strip(), normalized)

            return self.db.get_merchant_group(group_id)

    def _group_for_global(self, user_id: str, global_merchant_id: int) -> int:
        existing = self.db.find_merchant_group(user_id, global_merchant_id)
        if existing is not None:
            return existing.id
        merchant = self.db.get_global_merchant(global_merchant_id)
        return self.db.create_merchant_group(
            user_id=user_id, display_name=merchant.display_name, global_merchant_id=global_merchant_id
        )

    def display_name(self, transaction: Transaction) -> str:
        """Merchant name shown for a committed transaction."""
        if transaction.merchant_group_id is not None:
            group = self.db.get_merchant_group(transaction.merchant_group_id)
            if group is not None:
                return group.display_name
        return merchant_display_name(transaction.description)

    def list_groups(self, user_id: str) -> list[MerchantGroup]:
        """List a user's merchant groups."""
        return self.db.list_merchant_groups(user_id=user_id)

    def list_global_merchants(self) -> list[GlobalMerchant]:
        """List the shared merchant dictionary."""
        return self.db.list_global_merchants()

    def create_global_merchant(self, display_name: str, patterns: tuple[str, ...] = ()) -> int:
        """Add a shared merchant identity with optional patterns.

        Raises:
            ValidationError: If the name is empty
            ConflictError: If the name or a pattern is already taken
        """
        display_name = display_name.strip()
        if not display_name:
            raise ValidationError("Merchant name must not be empty")
        if self.db.get_global_merchant_by_name(display_name) is not None:
            raise ConflictError(f"Global merchant '{display_name}' already exists")

        with self.db.unit_of_work():
            merchant_id = self.db.create_global_merchant(display_name)
            for pattern in patterns:
                self.db.add_global_pattern(merchant_id, pattern, self.pattern_key(pattern))
        return merchant_id

    def add_global_pattern(self, global_merchant_id: int, pattern: str) -> int:
        """Attach a description pattern to a global merchant."""
        if self.db.get_global_merchant(global_merchant_id) is None:
            raise NotFoundError(f"Global merchant {global_merchant_id} not found")
        return self.db.add_global_pattern(global_merchant_id, pattern, self.pattern_key(pattern))

    def link_group(self, group_id: int, global_merchant_id: int) -> int:
        """Link a user's group to a global merchant.

        If the user already has a group for that merchant, this group is
        folded into it instead, so one user never has two groups for one
        global identity.

        Returns:
            ID of the group that is linked afterwards
        """
        group = self.db.get_merchant_group(group_id)
        if group is None:
            raise NotFoundError(f"Merchant group {group_id} not found")
        merchant = self.db.get_global_merchant(global_merchant_id)
        if merchant is None:
            raise NotFoundError(f"Global merchant {global_merchant_id} not found")

        with self._lock, self.db.unit_of_work():
            existing = self.db.find_merchant_group(group.user_id, global_merchant_id)
            if existing is not None and existing.id != group.id:
                self._fold_group(group.id, existing.id)
                linked_id = existing.id
            else:
                self.db.update_merchant_group(
                    group.id, display_name=merchant.display_name, global_merchant_id=global_merchant_id
                )
                linked_id = group.id
        self.cache.invalidate()
        return linked_id

    def _fold_group(self, from_group_id: int, to_group_id: int) -> None:
        self.db.reassign_transactions_merchant_group(from_group_id, to_group_id)
        self.db.move_merchant_patterns(from_group_id, to_group_id)
        self.db.delete_merchant_group(from_group_id)

    def merge(self, source_global_id: int, target_global_id: int) -> dict[str, int]:
        """Merge one global merchant into another.

        All of the source's patterns move to the target. Each user group
        linked to the source is folded into the user's target-linked group
        when there is one, and relinked otherwise. Committed transactions
        matching the moved patterns are pointed at the target identity. The
        whole merge is one unit of work.

        Args:
            source_global_id: Merchant that disappears
            target_global_id: Merchant that remains

        Returns:
            Dict with patterns_moved, groups_updated and transactions_resynced

        Raises:
            ValidationError: If source and target are the same
            NotFoundError: If either merchant does not exist
        """
        if source_global_id == target_global_id:
            raise ValidationError("Cannot merge a merchant into itself")
        source = self.db.get_global_merchant(source_global_id)
        if source is None:
            raise NotFoundError(f"Global merchant {source_global_id} not found")
        target = self.db.get_global_merchant(target_global_id)
        if target is None:
            raise NotFoundError(f"Global merchant {target_global_id} not found")

        with self._lock:
            with self.db.unit_of_work():
                moved_patterns = {p.normalized_pattern for p in self.db.list_global_patterns(source.id)}
                patterns_moved = self.db.move_global_patterns(source.id, target.id)

                groups_updated = 0
                for group in self.db.list_merchant_groups(global_merchant_id=source.id):
                    existing = self.db.find_merchant_group(group.user_id, target.id)
                    if existing is not None:
                        self._fold_group(group.id, existing.id)
                    else:
                        self.db.update_merchant_group(
                            group.id, display_name=target.display_name, global_merchant_id=target.id
                        )
                    groups_updated += 1

                transactions_resynced = self._resync(moved_patterns, target.id)
                self.db.delete_global_merchant(source.id)
            self.cache.invalidate()

        logger.info(
            "Merged merchant %d into %d: %d patterns, %d groups, %d transactions",
            source.id,
            target.id,
            patterns_moved,
            groups_updated,
            transactions_resynced,
        )
        return {
            "patterns_moved": patterns_moved,
            "groups_updated": groups_updated,
            "transactions_resynced": transactions_resynced,
        }

    def _resync(self, normalized_patterns: set[str], target_global_id: int) -> int:
        """Point transactions matching the patterns at each user's target group."""
        if not normalized_patterns:
            return 0
        by_user: dict[str, list[Transaction]] = {}
        for txn in self.db.list_transactions():
            if self.pattern_key(txn.description) in normalized_patterns:
                by_user.setdefault(txn.user_id, []).append(txn)

        resynced = 0
        for user_id, transactions in by_user.items():
            group_id = self._group_for_global(user_id, target_global_id)
            stale = [t.id for t in transactions if t.merchant_group_id != group_id]
            resynced += self.db.set_transactions_merchant_group(stale, group_id)
        return resynced
