"""Import setup domain service."""

from typing import Optional, Sequence

from ledgerflow.database.base import Database
from ledgerflow.domain.entities import ImportSetup, SOURCE_BANK, SOURCE_EMAIL
from ledgerflow.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    account_not_found,
    import_setup_not_found,
    template_not_found,
)


class ImportSetupService:
    """Service for managing automatic import sources."""

    def __init__(self, db: Database):
        """Initialize import setup service.

        Args:
            db: Database instance
        """
        self.db = db

    def _check_refs(self, account_id: Optional[int], template_id: Optional[int]) -> None:
        if account_id is not None and self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))
        if template_id is not None and self.db.get_mapping_template(template_id) is None:
            raise NotFoundError(template_not_found(template_id))

    def create_email_setup(
        self,
        user_id: str,
        name: str,
        email_address: str,
        account_id: Optional[int] = None,
        template_id: Optional[int] = None,
        is_historical: bool = False,
    ) -> int:
        """Create an email import setup.

        Mail sent to email_address is imported through this setup.

        Returns:
            ID of created setup

        Raises:
            ValidationError: If the address is not an address
            ConflictError: If an active setup already uses the address
        """
        address = email_address.strip().lower()
        if "@" not in address or address.startswith("@") or address.endswith("@"):
            raise ValidationError(f"'{email_address}' is not an email address")
        if self.db.find_import_setups_by_email([address]):
            raise ConflictError(f"Email address '{address}' is already used by an import setup")
        self._check_refs(account_id, template_id)

        return self.db.create_import_setup(
            user_id=user_id,
            name=name,
            source_type=SOURCE_EMAIL,
            account_id=account_id,
            template_id=template_id,
            email_address=address,
            is_historical=is_historical,
        )

    def create_bank_setup(
        self,
        user_id: str,
        name: str,
        provider: str,
        access_token: str,
        account_refs: Sequence[str],
        account_id: Optional[int] = None,
        template_id: Optional[int] = None,
        is_historical: bool = False,
    ) -> int:
        """Create a bank connection setup polling one or more linked accounts.

        Returns:
            ID of created setup

        Raises:
            ValidationError: If the token or the account refs are missing
        """
        refs = [ref.strip() for ref in account_refs if ref.strip()]
        if not access_token:
            raise ValidationError("Bank setup needs an access token")
        if not refs:
            raise ValidationError("Bank setup needs at least one linked account")
        self._check_refs(account_id, template_id)

        return self.db.create_import_setup(
            user_id=user_id,
            name=name,
            source_type=SOURCE_BANK,
            account_id=account_id,
            template_id=template_id,
            provider=provider,
            access_token=access_token,
            account_refs=refs,
            is_historical=is_historical,
        )

    def get_setup(self, setup_id: int) -> ImportSetup:
        """Get import setup by ID.

        Raises:
            NotFoundError: If setup not found
        """
        setup = self.db.get_import_setup(setup_id)
        if setup is None:
            raise NotFoundError(import_setup_not_found(setup_id))
        return setup

    def list_setups(
        self, user_id: Optional[str] = None, source_type: Optional[str] = None
    ) -> list[ImportSetup]:
        """List import setups."""
        return self.db.list_import_setups(user_id=user_id, source_type=source_type)

    def set_active(self, setup_id: int, is_active: bool) -> None:
        """Enable or disable a setup."""
        self.get_setup(setup_id)
        self.db.set_import_setup_active(setup_id, is_active)
