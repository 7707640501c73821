"""Inbound email webhook adapter.

The webhook body is a JSON mapping::

    {
        "from": "alerts@bank.example",
        "to": ["me+bank@imports.example"],
        "subject": "Your statement",
        "attachments": [
            {"filename": "statement.csv", "content_type": "text/csv", "content": "<base64>"}
        ]
    }
"""

import base64
import binascii
from dataclasses import dataclass
from email.utils import getaddresses, parseaddr
from typing import Any, Mapping

from ledgerflow.adapters.base import SourceBatch
from ledgerflow.adapters.csv_upload import read_csv_bytes
from ledgerflow.domain.entities import SOURCE_EMAIL
from ledgerflow.domain.errors import SourceError, WebhookRejected

TABULAR_CONTENT_TYPES = frozenset(
    {"text/csv", "application/csv", "text/comma-separated-values", "application/vnd.ms-excel", "text/plain"}
)
TABULAR_EXTENSIONS = (".csv", ".txt", ".tsv")


@dataclass(frozen=True)
class Attachment:
    """Decoded email attachment."""

    filename: str
    content_type: str
    data: bytes

    @property
    def is_tabular(self) -> bool:
        return (
            self.filename.lower().endswith(TABULAR_EXTENSIONS)
            or self.content_type.split(";")[0].strip().lower() in TABULAR_CONTENT_TYPES
        )


@dataclass(frozen=True)
class InboundEmail:
    """Parsed webhook payload."""

    sender: str
    recipients: tuple[str, ...]
    subject: str
    attachments: tuple[Attachment, ...]


def _addresses(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    return tuple(addr.lower() for _, addr in getaddresses([str(v) for v in value]) if addr)


def parse_inbound_email(payload: Mapping[str, Any]) -> InboundEmail:
    """Validate and decode a webhook payload.

    Raises:
        WebhookRejected: 400 if the payload is malformed
    """
    if not isinstance(payload, Mapping):
        raise WebhookRejected("Webhook payload must be a JSON object", status_code=400)

    recipients = _addresses(payload.get("to")) + _addresses(payload.get("cc"))
    if not recipients:
        raise WebhookRejected("Webhook payload has no recipient address", status_code=400)

    attachments = []
    for index, item in enumerate(payload.get("attachments") or []):
        if not isinstance(item, Mapping):
            raise WebhookRejected(f"Attachment {index} is not an object", status_code=400)
        try:
            data = base64.b64decode(item.get("content") or "", validate=True)
        except (binascii.Error, ValueError) as e:
            raise WebhookRejected(f"Attachment {index} is not valid base64: {e}", status_code=400) from e
        if not data:
            continue
        attachments.append(
            Attachment(
                filename=str(item.get("filename") or f"attachment-{index}"),
                content_type=str(item.get("content_type") or "application/octet-stream"),
                data=data,
            )
        )

    return InboundEmail(
        sender=parseaddr(str(payload.get("from") or ""))[1].lower(),
        recipients=recipients,
        subject=str(payload.get("subject") or ""),
        attachments=tuple(attachments),
    )


def attachment_batches(message: InboundEmail) -> list[SourceBatch]:
    """Read every tabular attachment of a message.

    Raises:
        WebhookRejected: 422 if there is no tabular attachment or one cannot be parsed
    """
    tabular = [a for a in message.attachments if a.is_tabular]
    if not tabular:
        raise WebhookRejected("Email has no CSV attachment", status_code=422)

    batches = []
    for attachment in tabular:
        try:
            batch = read_csv_bytes(attachment.data, attachment.filename, source_type=SOURCE_EMAIL)
        except SourceError as e:
            raise WebhookRejected(str(e), status_code=422) from e
        batches.append(
            SourceBatch(
                rows=batch.rows,
                source_type=SOURCE_EMAIL,
                source_name=attachment.filename,
                metadata={"sender": message.sender, "subject": message.subject},
            )
        )
    return batches
