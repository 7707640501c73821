"""Tests for the file, email and bank source adapters."""

import base64
import json
import pytest

from ledgerflow.adapters.bank import FetchResult, GenericPayload, TellerPayload, fetch_batch
from ledgerflow.adapters.base import VIRTUAL_HEADER
from ledgerflow.adapters.csv_upload import read_csv_bytes, read_csv_file, read_csv_text
from ledgerflow.adapters.email import attachment_batches, parse_inbound_email
from ledgerflow.domain.errors import SourceError, WebhookRejected


def b64(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def email_payload(**overrides):
    payload = {
        "from": "Bank Alerts <alerts@bank.example>",
        "to": ["Me <ME+bank@imports.example>"],
        "subject": "Statement",
        "attachments": [
            {"filename": "statement.csv", "content_type": "text/csv", "content": b64("Date,Amount\n2024-01-05,-4.50\n")}
        ],
    }
    payload.update(overrides)
    return payload


TELLER_RECORD = {
    "id": "txn_1",
    "date": "2024-01-05",
    "amount": "-4.50",
    "description": "",
    "status": "posted",
    "details": {"counterparty": {"name": "COFFEE SHOP"}},
}


def test_read_csv_file(fixtures_dir):
    """A file becomes one row per line, header included."""
    batch = read_csv_file(fixtures_dir / "simple.csv")

    assert batch.source_type == "csv"
    assert batch.source_name == "simple.csv"
    assert batch.cells[0] == ("Date", "Description", "Amount")
    assert len(batch.rows) == 5
    assert all(row.payload is None for row in batch.rows)


def test_read_csv_missing_file(tmp_path):
    """A missing file is a SourceError."""
    with pytest.raises(SourceError, match="not found"):
        read_csv_file(tmp_path / "nope.csv")


def test_read_csv_sniffs_delimiter():
    """Semicolon-separated exports are read without configuration."""
    text = "Date;Description;Amount\n2024-01-05;COFFEE SHOP;-4.50\n2024-01-06;PAYROLL;2000.00\n"

    batch = read_csv_text(text, "semi.csv")

    assert batch.cells[1] == ("2024-01-05", "COFFEE SHOP", "-4.50")


def test_read_csv_bytes_encodings():
    """A UTF-8 BOM is dropped and non-UTF-8 bytes still decode."""
    with_bom = read_csv_bytes(b"\xef\xbb\xbfDate,Amount\n2024-01-05,-4.50\n", "bom.csv")
    latin = read_csv_bytes(b"Date,Description\n2024-01-05,CAF\xe9\n", "latin.csv")

    assert with_bom.cells[0] == ("Date", "Amount")
    assert latin.cells[1] == ("2024-01-05", "CAFé")


def test_read_csv_blank_lines():
    """Blank lines are dropped and an empty upload is rejected."""
    batch = read_csv_text("Date,Amount\n\n2024-01-05,-4.50\n\n", "gaps.csv")
    assert len(batch.rows) == 2

    with pytest.raises(SourceError, match="contains no rows"):
        read_csv_text("\n\n", "empty.csv")


def test_parse_inbound_email():
    """Addresses are normalized and attachments decoded."""
    message = parse_inbound_email(email_payload(cc="Other <other@imports.example>"))

    assert message.sender == "alerts@bank.example"
    assert message.recipients == ("me+bank@imports.example", "other@imports.example")
    assert message.attachments[0].data == b"Date,Amount\n2024-01-05,-4.50\n"
    assert message.attachments[0].is_tabular


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "a", "mapping"],
        email_payload(to=[]),
        email_payload(attachments=["oops"]),
        email_payload(attachments=[{"filename": "x.csv", "content": "!!not base64!!"}]),
    ],
)
def test_parse_inbound_email_rejects_malformed(payload):
    """Malformed payloads are rejected with status 400."""
    with pytest.raises(WebhookRejected) as excinfo:
        parse_inbound_email(payload)

    assert excinfo.value.status_code == 400


def test_attachment_batches(fixtures_dir):
    """Every tabular attachment becomes an email batch."""
    payload = json.loads((fixtures_dir / "email_payload.json").read_text())

    batches = attachment_batches(parse_inbound_email(payload))

    assert len(batches) == 1
    assert batches[0].source_type == "email"
    assert batches[0].source_name == "statement.csv"
    assert batches[0].cells[0] == ("TxnDate", "Desc", "Debit", "Credit")
    assert batches[0].metadata["sender"]


def test_attachment_batches_without_csv():
    """Mail without a usable attachment is unprocessable (422)."""
    image = {"filename": "logo.png", "content_type": "image/png", "content": b64("png")}
    blank = {"filename": "blank.csv", "content_type": "text/csv", "content": b64("\n\n")}

    with pytest.raises(WebhookRejected) as no_csv:
        attachment_batches(parse_inbound_email(email_payload(attachments=[image])))
    with pytest.raises(WebhookRejected) as unreadable:
        attachment_batches(parse_inbound_email(email_payload(attachments=[blank])))

    assert no_csv.value.status_code == 422
    assert unreadable.value.status_code == 422


def test_teller_payload():
    """Teller records fall back to the counterparty name."""
    payload = TellerPayload(TELLER_RECORD)

    assert payload.to_canonical_row() == ("2024-01-05", "-4.50", "COFFEE SHOP", "posted")
    assert payload.discriminator == "teller:txn_1"
    assert payload.to_dict()["id"] == "txn_1"


def test_generic_payload():
    """Generic records keep their provider name in the discriminator."""
    with_id = GenericPayload({"id": "abc", "date": "2024-01-06", "amount": 10, "description": "REFUND"}, "plaid")
    without_id = GenericPayload({"date": "2024-01-06", "amount": "1", "description": "X", "status": None})

    assert with_id.to_canonical_row() == ("2024-01-06", "10", "REFUND", "")
    assert with_id.discriminator == "plaid:abc"
    assert without_id.discriminator is None


def test_fetch_batch_is_virtual_csv():
    """Fetched records are projected under the virtual header."""
    result = FetchResult(transactions=[TellerPayload(TELLER_RECORD)], next_cursor="txn_1")

    batch = fetch_batch(result, "teller", "acc_1")

    assert batch.cells[0] == VIRTUAL_HEADER
    assert batch.source_type == "bank"
    assert batch.source_name == "teller:acc_1"
    assert batch.metadata == {"account_ref": "acc_1"}
    assert batch.discriminators() == [None, "teller:txn_1"]
    stored = batch.payload_dicts()
    assert stored[0] is None
    assert stored[1]["provider"] == "teller"
    assert stored[1]["record"]["amount"] == "-4.50"
