"""Bank-data connector interface and provider payloads."""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Sequence

from ledgerflow.adapters.base import SourceBatch, SourcePayload, virtual_csv_batch
from ledgerflow.domain.entities import SOURCE_BANK


class TellerPayload(SourcePayload):
    """Transaction record from Teller.

    Teller amounts are signed strings and dates are ISO 8601.
    """

    provider = "teller"

    def __init__(self, record: Mapping[str, Any]):
        self.record = dict(record)

    def to_canonical_row(self) -> tuple[str, ...]:
        details = self.record.get("details") or {}
        counterparty = (details.get("counterparty") or {}).get("name")
        description = self.record.get("description") or counterparty or ""
        return (
            str(self.record.get("date", "")),
            str(self.record.get("amount", "")),
            str(description),
            str(self.record.get("status", "")),
        )

    @property
    def discriminator(self) -> Optional[str]:
        txn_id = self.record.get("id")
        return f"teller:{txn_id}" if txn_id else None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.record)


class GenericPayload(SourcePayload):
    """Record from a provider that already uses date/amount/description keys."""

    def __init__(self, record: Mapping[str, Any], provider: str = "generic"):
        self.record = dict(record)
        self.provider = provider

    def to_canonical_row(self) -> tuple[str, ...]:
        return (
            str(self.record.get("date", "")),
            str(self.record.get("amount", "")),
            str(self.record.get("description", "")),
            str(self.record.get("status", "") or ""),
        )

    @property
    def discriminator(self) -> Optional[str]:
        txn_id = self.record.get("id")
        return f"{self.provider}:{txn_id}" if txn_id else None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.record)


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching one linked account."""

    transactions: Sequence[SourcePayload]
    errors: Sequence[str] = field(default_factory=tuple)
    next_cursor: Optional[str] = None


class BankConnector(Protocol):
    """Fetches new transactions for one linked account."""

    def fetch(self, access_token: str, account_ref: str, since_cursor: Optional[str]) -> FetchResult:
        """Return transactions since the cursor. Errors are reported, not raised."""
        ...


def fetch_batch(result: FetchResult, provider: str, account_ref: str) -> SourceBatch:
    """Project a fetch result onto a virtual-CSV batch."""
    return virtual_csv_batch(
        result.transactions,
        source_type=SOURCE_BANK,
        source_name=f"{provider}:{account_ref}",
        account_ref=account_ref,
    )
