"""Source adapters: every origin reduced to a SourceBatch."""

from ledgerflow.adapters.base import RawRow, SourceBatch, SourcePayload, VIRTUAL_HEADER
from ledgerflow.adapters.bank import BankConnector, FetchResult, GenericPayload, TellerPayload
from ledgerflow.adapters.csv_upload import read_csv_bytes, read_csv_file, read_csv_text

__all__ = [
    "RawRow",
    "SourceBatch",
    "SourcePayload",
    "VIRTUAL_HEADER",
    "BankConnector",
    "FetchResult",
    "GenericPayload",
    "TellerPayload",
    "read_csv_bytes",
    "read_csv_file",
    "read_csv_text",
]
