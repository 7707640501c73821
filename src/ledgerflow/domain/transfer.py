"""Moving money between category envelopes."""

import uuid
from decimal import Decimal
from typing import Optional

from ledgerflow.database.base import Database
from ledgerflow.domain.entities import CHANGE_TRANSFER_FROM, CHANGE_TRANSFER_TO, SCOPE_CATEGORY
from ledgerflow.domain.errors import (
    CommitConflictError,
    NotFoundError,
    ValidationError,
    category_not_found,
)
from ledgerflow.domain.locks import EntityLockRegistry
from ledgerflow.logging_setup import get_logger

logger = get_logger("ledgerflow.domain.transfer")


class TransferService:
    """Moves envelope balance from one category to another."""

    def __init__(self, db: Database, locks: Optional[EntityLockRegistry] = None):
        """Initialize transfer service.

        Args:
            db: Database instance
            locks: Lock registry shared with the commit engine
        """
        self.db = db
        self.locks = locks or EntityLockRegistry()

    def transfer(
        self,
        from_category_id: int,
        to_category_id: int,
        amount: Decimal,
        actor: str,
        description: Optional[str] = None,
    ) -> str:
        """Move amount from one category's balance to another's.

        Both balance changes and their two audit entries (`transfer_from` and
        `transfer_to`) are written in one unit of work. The entries share a
        transfer reference.

        Args:
            from_category_id: Category the money leaves
            to_category_id: Category the money goes to
            amount: Positive amount to move
            actor: User making the transfer
            description: Optional note stored on both audit entries

        Returns:
            The transfer reference

        Raises:
            ValidationError: If the amount is not positive, both categories are
                the same, or the source balance is smaller than the amount
            NotFoundError: If a category does not exist
            CommitConflictError: If a category changes or disappears underneath
        """
        if amount <= 0:
            raise ValidationError(f"Transfer amount must be positive, got {amount}")
        if from_category_id == to_category_id:
            raise ValidationError("Cannot transfer a category's balance to itself")
        for category_id in (from_category_id, to_category_id):
            if self.db.get_category(category_id) is None:
                raise NotFoundError(category_not_found(category_id))

        reference = uuid.uuid4().hex
        keys = [(SCOPE_CATEGORY, from_category_id), (SCOPE_CATEGORY, to_category_id)]
        with self.locks.hold(keys):
            source = self.db.get_category(from_category_id)
            if source is None:
                raise CommitConflictError(category_not_found(from_category_id))
            if source.current_balance < amount:
                raise ValidationError(
                    f"Insufficient balance in category '{source.name}': "
                    f"{source.current_balance:.2f} available, {amount:.2f} requested"
                )

            moves = (
                (from_category_id, -amount, CHANGE_TRANSFER_FROM),
                (to_category_id, amount, CHANGE_TRANSFER_TO),
            )
            with self.db.unit_of_work():
                for category_id, delta, change_type in moves:
                    category = self.db.get_category(category_id)
                    if category is None:
                        raise CommitConflictError(category_not_found(category_id))
                    old_balance, new_balance = self.db.apply_balance_change(
                        SCOPE_CATEGORY, category_id, delta, expected_version=category.version
                    )
                    self.db.add_audit_entry(
                        scope=SCOPE_CATEGORY,
                        entity_id=category_id,
                        old_balance=old_balance,
                        new_balance=new_balance,
                        change_amount=delta,
                        change_type=change_type,
                        actor=actor,
                        transfer_reference=reference,
                        description=description,
                    )

        logger.info(
            "Transferred %s from category %d to %d (%s)", amount, from_category_id, to_category_id, reference
        )
        return reference
