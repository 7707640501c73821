"""Shared shapes for source adapters.

Every adapter reduces its input to a ``SourceBatch``: rectangular rows of
string cells, each optionally carrying the provider record it came from.
API sources are projected onto a fixed "virtual CSV" header so the same
schema mapper and template matching serve them too.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

# Header of the virtual CSV that API payloads are projected onto
VIRTUAL_HEADER = ("Date", "Amount", "Description", "Status")


class SourcePayload(ABC):
    """Original record of one provider transaction."""

    provider: str = ""

    @abstractmethod
    def to_canonical_row(self) -> tuple[str, ...]:
        """Project the record onto VIRTUAL_HEADER cells."""
        pass

    @property
    @abstractmethod
    def discriminator(self) -> Optional[str]:
        """Provider transaction ID, if the provider has one."""
        pass

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Serializable form stored with the batch."""
        pass


@dataclass(frozen=True)
class RawRow:
    """One source row: ordered cells plus the record it came from."""

    cells: tuple[str, ...]
    payload: Optional[SourcePayload] = None


@dataclass(frozen=True)
class SourceBatch:
    """Rows of one ingestion event."""

    rows: tuple[RawRow, ...]
    source_type: str
    source_name: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def cells(self) -> list[tuple[str, ...]]:
        return [row.cells for row in self.rows]

    def payload_dicts(self) -> list[Optional[dict[str, Any]]]:
        """Stored form of each row's payload (None for plain file rows)."""
        out: list[Optional[dict[str, Any]]] = []
        for row in self.rows:
            if row.payload is None:
                out.append(None)
                continue
            out.append(
                {
                    "provider": row.payload.provider,
                    "discriminator": row.payload.discriminator,
                    "record": row.payload.to_dict(),
                }
            )
        return out

    def discriminators(self) -> list[Optional[str]]:
        return [row.payload.discriminator if row.payload else None for row in self.rows]


def virtual_csv_batch(
    payloads: Sequence[SourcePayload], source_type: str, source_name: str, **metadata: Any
) -> SourceBatch:
    """Build a batch with the virtual header row followed by one row per payload."""
    rows = [RawRow(cells=VIRTUAL_HEADER)]
    rows.extend(RawRow(cells=tuple(p.to_canonical_row()), payload=p) for p in payloads)
    return SourceBatch(rows=tuple(rows), source_type=source_type, source_name=source_name, metadata=metadata)
