"""Ingestion orchestration: from a source to queued rows.

Every entry point handles one bounded batch per call. File uploads, email
webhooks and bank polls all end in ``IngestService.ingest_batch``, which
stores the raw rows, maps them and hands the canonical rows to the queue.
"""

import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from ledgerflow.adapters.bank import BankConnector, FetchResult, fetch_batch
from ledgerflow.adapters.base import SourceBatch
from ledgerflow.adapters.csv_upload import read_csv_file
from ledgerflow.adapters.email import attachment_batches, parse_inbound_email
from ledgerflow.config import Config
from ledgerflow.database.base import Database
from ledgerflow.domain.categorization import CategorizationAdvisor, CategoryScorer
from ledgerflow.domain.commit import CommitEngine
from ledgerflow.domain.entities import SOURCE_BANK, SplitProposal
from ledgerflow.domain.errors import (
    DomainError,
    ManualMappingRequired,
    NotFoundError,
    ValidationError,
    WebhookRejected,
    account_not_found,
)
from ledgerflow.domain.import_queue import ImportQueueService
from ledgerflow.domain.import_setup import ImportSetupService
from ledgerflow.domain.locks import EntityLockRegistry
from ledgerflow.domain.mapping_template import structural_fingerprint
from ledgerflow.domain.merchants import MerchantNormalizer
from ledgerflow.domain.schema_mapper import check_fits, ensure_rectangular
from ledgerflow.logging_setup import get_logger

logger = get_logger("ledgerflow.domain.ingest")

# Upper bound on concurrent fetches of one bank setup
MAX_POLL_WORKERS = 8


class IngestService:
    """Entry point of the import pipeline.

    Wires the schema mapper, the queue, the categorization advisor and the
    commit engine together so every caller shares one merchant cache and one
    lock registry.
    """

    def __init__(
        self,
        db: Database,
        config: Optional[Config] = None,
        scorer: Optional[CategoryScorer] = None,
        merchants: Optional[MerchantNormalizer] = None,
        connectors: Optional[Mapping[str, BankConnector]] = None,
        locks: Optional[EntityLockRegistry] = None,
    ):
        """Initialize ingest service.

        Args:
            db: Database instance
            config: Application configuration
            scorer: Optional external category scorer
            merchants: Merchant normalizer; a new one is created when None
            connectors: Bank connectors keyed by provider name
            locks: Commit lock registry shared across services
        """
        self.db = db
        self.config = config or Config()
        self.merchants = merchants or MerchantNormalizer(db)
        self.advisor = CategorizationAdvisor(db, scorer, self.config.scorer)
        self.queue = ImportQueueService(db, self.config.imports)
        self.engine = CommitEngine(
            db,
            self.config.imports,
            locks=locks,
            merchants=self.merchants,
            advisor=self.advisor,
        )
        self.setups = ImportSetupService(db)
        self.connectors = dict(connectors or {})

    @property
    def mapper(self):
        return self.queue.mapper

    def ingest_batch(
        self,
        batch: SourceBatch,
        user_id: str,
        account_id: Optional[int] = None,
        template_id: Optional[int] = None,
        setup_id: Optional[int] = None,
        is_historical: bool = False,
    ) -> dict[str, Any]:
        """Store, map and queue one batch.

        The raw rows are stored before mapping, so a batch that needs a manual
        mapping can be remapped later without the source.

        Args:
            batch: Rows from a source adapter
            user_id: Owner of the batch
            account_id: Target account, if any
            template_id: Template to use instead of fingerprint matching
            setup_id: Import setup the batch came through
            is_historical: Whether the rows are backfill without balance effects

        Returns:
            Dict with batch_id, template_id, template_created, queued,
            duplicates, errors and row_ids

        Raises:
            ValidationError: If the rows are not rectangular or do not fit the
                explicit template; nothing is stored then
            NotFoundError: If the explicit template or the account is missing
            ManualMappingRequired: If columns could not be inferred; its
                batch_id names the stored batch
        """
        cells = batch.cells
        if template_id is not None:
            check_fits(self.mapper.templates.get_template(template_id), cells)
        else:
            ensure_rectangular(cells)
        if account_id is not None and self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))

        batch_id = uuid.uuid4().hex
        self.db.create_import_batch(
            batch_id=batch_id,
            user_id=user_id,
            source_type=batch.source_type,
            source_name=batch.source_name,
            raw_rows=cells,
            raw_payloads=batch.payload_dicts(),
            fingerprint=structural_fingerprint(batch.source_type, cells),
            template_id=template_id,
            setup_id=setup_id,
            account_id=account_id,
            is_historical=is_historical,
        )
        logger.info(
            "Stored batch %s from %s (%d rows)", batch_id, batch.source_name, len(cells)
        )

        try:
            mapped = self.mapper.map_batch(
                user_id,
                batch.source_type,
                cells,
                template_id=template_id,
                discriminators=batch.discriminators(),
            )
        except ManualMappingRequired as e:
            e.batch_id = batch_id
            raise

        self.db.update_import_batch_template(batch_id, mapped.template.id, mapped.fingerprint)
        result = self.queue.queue(batch_id, mapped.rows)
        result["errors"] = list(mapped.errors) + result["errors"]
        result.update(
            batch_id=batch_id,
            template_id=mapped.template.id,
            template_created=mapped.template_created,
        )
        return result

    def import_file(
        self,
        csv_file_path: str | Path,
        user_id: str,
        account_id: Optional[int] = None,
        template_id: Optional[int] = None,
        is_historical: bool = False,
    ) -> dict[str, Any]:
        """Import an uploaded CSV file into the queue."""
        batch = read_csv_file(csv_file_path)
        return self.ingest_batch(
            batch,
            user_id,
            account_id=account_id,
            template_id=template_id,
            is_historical=is_historical,
        )

    def ingest_email(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Handle an inbound email webhook.

        The recipients must resolve to exactly one active email setup and the
        message must carry at least one readable CSV attachment. Every
        attachment is read and checked against the setup's template before
        the first one is queued.

        Returns:
            Dict with setup_id, batch_ids, needs_mapping, queued, duplicates
            and errors

        Raises:
            WebhookRejected: 400 for a malformed payload, 404 when no setup
                matches, 422 when several match or an attachment is unusable
        """
        try:
            message = parse_inbound_email(payload)
            setups = self.db.find_import_setups_by_email(message.recipients)
            if not setups:
                raise WebhookRejected(
                    f"No import setup for {', '.join(message.recipients)}", status_code=404
                )
            if len(setups) > 1:
                raise WebhookRejected(
                    f"Recipients match {len(setups)} import setups; expected exactly one",
                    status_code=422,
                )
            setup = setups[0]
            batches = attachment_batches(message)
            for batch in batches:
                try:
                    if setup.template_id is not None:
                        check_fits(self.mapper.templates.get_template(setup.template_id), batch.cells)
                    else:
                        ensure_rectangular(batch.cells)
                except DomainError as e:
                    raise WebhookRejected(f"{batch.source_name}: {e}", status_code=422) from e
        except WebhookRejected as e:
            logger.warning("Rejected email webhook (%d): %s", e.status_code, e)
            raise

        summary: dict[str, Any] = {
            "setup_id": setup.id,
            "batch_ids": [],
            "needs_mapping": [],
            "queued": 0,
            "duplicates": 0,
            "errors": [],
        }
        for batch in batches:
            try:
                result = self.ingest_batch(
                    batch,
                    setup.user_id,
                    account_id=setup.account_id,
                    template_id=setup.template_id,
                    setup_id=setup.id,
                    is_historical=setup.is_historical,
                )
            except ManualMappingRequired as e:
                summary["batch_ids"].append(e.batch_id)
                summary["needs_mapping"].append(e.batch_id)
                summary["errors"].append(f"{batch.source_name}: {e}")
                continue
            except DomainError as e:
                logger.warning("Attachment %s not queued: %s", batch.source_name, e)
                summary["errors"].append(f"{batch.source_name}: {e}")
                continue
            summary["batch_ids"].append(result["batch_id"])
            summary["queued"] += result["queued"]
            summary["duplicates"] += result["duplicates"]
            summary["errors"].extend(f"{batch.source_name}: {err}" for err in result["errors"])
        logger.info(
            "Email for setup %d: %d queued, %d duplicates",
            setup.id,
            summary["queued"],
            summary["duplicates"],
        )
        return summary

    def poll_bank_setup(self, setup_id: int, now: Optional[datetime] = None) -> dict[str, Any]:
        """Fetch every linked account of a bank setup and queue the results.

        Fetches run concurrently. An account whose fetch reports errors or
        fails queues nothing and keeps its cursor; its siblings are not
        affected. The setup's fetch status is written once at the end.

        Returns:
            Dict with setup_id, accounts (per ref), queued, duplicates and errors

        Raises:
            NotFoundError: If the setup does not exist
            ValidationError: If it is not a bank setup or has no connector
        """
        setup = self.setups.get_setup(setup_id)
        if setup.source_type != SOURCE_BANK:
            raise ValidationError(f"Import setup {setup_id} is not a bank connection")
        connector = self.connectors.get(setup.provider or "")
        if connector is None:
            raise ValidationError(f"No connector for provider '{setup.provider}'")
        now = now or datetime.now(UTC)

        cursors = dict(setup.sync_cursors)
        fetched = self._fetch_all(connector, setup.access_token or "", setup.account_refs, cursors)

        accounts: dict[str, dict[str, Any]] = {}
        errors: list[str] = []
        queued = 0
        duplicates = 0
        for ref in setup.account_refs:
            outcome = fetched[ref]
            if isinstance(outcome, str):
                errors.append(f"{ref}: {outcome}")
                accounts[ref] = {"queued": 0, "duplicates": 0, "error": outcome}
                continue
            if outcome.errors:
                message = "; ".join(outcome.errors)
                errors.append(f"{ref}: {message}")
                accounts[ref] = {"queued": 0, "duplicates": 0, "error": message}
                continue

            entry: dict[str, Any] = {"queued": 0, "duplicates": 0, "error": None}
            if outcome.transactions:
                try:
                    result = self.ingest_batch(
                        fetch_batch(outcome, setup.provider, ref),
                        setup.user_id,
                        account_id=setup.account_id,
                        template_id=setup.template_id,
                        setup_id=setup.id,
                        is_historical=setup.is_historical,
                    )
                except DomainError as e:
                    errors.append(f"{ref}: {e}")
                    accounts[ref] = {"queued": 0, "duplicates": 0, "error": str(e)}
                    continue
                entry.update(queued=result["queued"], duplicates=result["duplicates"])
                errors.extend(f"{ref}: {err}" for err in result["errors"])
            if outcome.next_cursor is not None:
                cursors[ref] = outcome.next_cursor
            queued += entry["queued"]
            duplicates += entry["duplicates"]
            accounts[ref] = entry

        failed = any(a["error"] for a in accounts.values())
        self.db.update_import_setup_status(
            setup.id,
            last_fetch_at=now,
            last_successful_fetch_at=setup.last_successful_fetch_at if failed else now,
            last_error="; ".join(errors) if failed else None,
            error_count=setup.error_count + 1 if failed else 0,
            sync_cursors=cursors,
        )
        logger.info(
            "Polled setup %d: %d accounts, %d queued, %d duplicates, %d errors",
            setup.id,
            len(accounts),
            queued,
            duplicates,
            len(errors),
        )
        return {
            "setup_id": setup.id,
            "accounts": accounts,
            "queued": queued,
            "duplicates": duplicates,
            "errors": errors,
        }

    @staticmethod
    def _fetch_all(
        connector: BankConnector,
        access_token: str,
        refs: Sequence[str],
        cursors: Mapping[str, str],
    ) -> dict[str, FetchResult | str]:
        """Fetch all refs concurrently. A failed fetch maps to its error text."""
        if not refs:
            return {}
        outcomes: dict[str, FetchResult | str] = {}
        with ThreadPoolExecutor(max_workers=min(len(refs), MAX_POLL_WORKERS)) as pool:
            futures = {
                ref: pool.submit(connector.fetch, access_token, ref, cursors.get(ref)) for ref in refs
            }
            for ref, future in futures.items():
                try:
                    outcomes[ref] = future.result()
                except Exception as e:
                    logger.warning("Fetch of %s failed: %s", ref, e)
                    outcomes[ref] = str(e) or type(e).__name__
        return outcomes

    def categorize(self, batch_id: str, use_scorer: bool = True) -> dict[str, int]:
        """Attach suggested categories to a batch's queued rows."""
        return self.queue.categorize(batch_id, self.advisor, use_scorer=use_scorer)

    def approve(
        self,
        batch_id: str,
        edits: Optional[Mapping[int, Sequence[SplitProposal]]] = None,
        row_ids: Optional[Sequence[int]] = None,
    ) -> dict[str, Any]:
        """Commit a batch's categorized rows."""
        return self.queue.approve_batch(batch_id, self.engine, edits=edits, row_ids=row_ids)
