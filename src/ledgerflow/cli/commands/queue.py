"""Review queue commands: list, inspect, remap, categorize, approve, discard."""

import click
from ledgerflow.cli.commands.import_cmd import echo_queue_result
from ledgerflow.cli.error_handling import handle_domain_error
from ledgerflow.cli.services import get_ingest_service
from ledgerflow.domain.category import CategoryService
from ledgerflow.domain.entities import SplitProposal
from ledgerflow.domain.errors import DomainError
from ledgerflow.utils.amount_parser import parse_amount


def parse_split(category_service: CategoryService, value: str) -> SplitProposal:
    """Parse a ``CATEGORY=AMOUNT`` split option."""
    category, sep, amount = value.rpartition("=")
    if not sep or not category:
        raise click.BadParameter(f"'{value}' is not CATEGORY=AMOUNT")
    try:
        return SplitProposal(category_service.resolve_category(category.strip()).id, parse_amount(amount))
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.group()
def queue_group():
    """Review queued imports."""
    pass


@queue_group.command("list")
@click.pass_context
def list_batches(ctx):
    """List import batches and their review state."""
    service = get_ingest_service(ctx)

    batches = service.queue.list_batches(ctx.obj["user"])
    if not batches:
        click.echo("No import batches found.")
        return

    click.echo("\nImport batches:")
    click.echo("-" * 96)
    for b in batches:
        counts = ", ".join(f"{k}: {v}" for k, v in sorted(b["counts"].items())) or "no rows"
        dates = f"{b['start_date']} - {b['end_date']}" if b["start_date"] else "-"
        historical = f" | historical: {b['historical']}" if b["historical"] != "none" else ""
        click.echo(
            f"{b['batch_id']} | {b['source_name'][:24]:24s} | {b['status']:8s} | {dates} | "
            f"{counts}{historical}"
        )


@queue_group.command("show")
@click.argument("batch_id")
@click.option("--all", "show_all", is_flag=True, help="Include discarded and approved rows")
@click.pass_context
def show_batch(ctx, batch_id: str, show_all: bool):
    """Show the rows of a batch."""
    service = get_ingest_service(ctx)
    categories = CategoryService(ctx.obj["db"])

    try:
        rows = service.queue.get_rows(batch_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    for row in rows:
        if not show_all and row.status in ("discarded", "approved"):
            continue
        line = f"{row.id:5d} | {row.date} | {row.amount:>10.2f} | {row.description[:36]:36s} | {row.status}"
        if row.duplicate_of:
            line += f" ({row.duplicate_of})"
        click.echo(line)
        for split in row.splits:
            source = f" [{row.suggestion_source}]" if row.suggestion_source else ""
            click.echo(
                f"        -> {categories.format_category_path(split.category_id)}: "
                f"{split.amount:.2f}{source}"
            )


@queue_group.command("remap")
@click.argument("batch_id")
@click.argument("template_id", type=int)
@click.option("--apply", "apply_remap", is_flag=True, help="Replace the pending rows")
@click.pass_context
def remap_batch(ctx, batch_id: str, template_id: int, apply_remap: bool):
    """Re-run mapping of a stored batch with another template.

    Without --apply this only previews the rows the template would produce.
    """
    service = get_ingest_service(ctx)

    try:
        if apply_remap:
            result = service.queue.apply_remap(batch_id, template_id)
        else:
            preview = service.queue.remap(batch_id, template_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    if apply_remap:
        click.echo(f"\nRemapped batch {batch_id} ({result['superseded']} rows superseded):")
        echo_queue_result(result)
        return

    click.echo(f"\nPreview of batch {batch_id} with template {template_id}:")
    for p in preview.rows:
        flag = f" duplicate of {p.duplicate_of}" if p.duplicate_of else ""
        click.echo(f"  {p.row.date} | {p.row.amount:>10.2f} | {p.row.description[:40]}{flag}")
    for error in preview.errors:
        click.echo(f"  {error}", err=True)
    click.echo("Run again with --apply to replace the pending rows.")


@queue_group.command("assign")
@click.argument("row_id", type=int)
@click.argument("category")
@click.option("--split", "splits", multiple=True, help="CATEGORY=AMOUNT split (repeatable)")
@click.pass_context
def assign_row(ctx, row_id: int, category: str, splits: tuple[str, ...]):
    """Put a row into CATEGORY, or split it with --split.

    With --split, CATEGORY is ignored and the splits must add up to the row
    amount.
    """
    service = get_ingest_service(ctx)
    categories = CategoryService(ctx.obj["db"])

    try:
        if splits:
            row = service.queue.set_splits(row_id, [parse_split(categories, s) for s in splits])
        else:
            cat = categories.resolve_category(category)
            row = service.queue.assign_category(row_id, cat.id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Row {row.id} categorized ({len(row.splits)} split{'s' if len(row.splits) != 1 else ''})")


@queue_group.command("categorize")
@click.argument("batch_id")
@click.option("--no-scorer", is_flag=True, help="Use learned rules only")
@click.pass_context
def categorize_batch(ctx, batch_id: str, no_scorer: bool):
    """Suggest categories for a batch's uncategorized rows."""
    service = get_ingest_service(ctx)

    try:
        result = service.categorize(batch_id, use_scorer=not no_scorer)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"\nCategorized {result['categorized']} rows:")
    click.echo(f"  By rule: {result['by_rule']}")
    click.echo(f"  By scorer: {result['by_scorer']}")
    click.echo(f"  Still uncategorized: {result['uncategorized']}")


@queue_group.command("approve")
@click.argument("batch_id")
@click.option("--row", "row_ids", type=int, multiple=True, help="Only approve these rows (repeatable)")
@click.pass_context
def approve_batch(ctx, batch_id: str, row_ids: tuple[int, ...]):
    """Commit a batch's categorized rows into the ledger."""
    service = get_ingest_service(ctx)

    try:
        result = service.approve(batch_id, row_ids=list(row_ids) or None)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo("\nApproval complete:")
    click.echo(f"  Imported: {result['imported']} transactions")
    click.echo(f"  Duplicates: {result['duplicates']}")
    click.echo(f"  Skipped (uncategorized): {result['skipped']}")
    if result["errors"]:
        click.echo(f"  Errors: {len(result['errors'])}")
        for error in result["errors"]:
            click.echo(f"    {error}", err=True)


@queue_group.command("discard")
@click.argument("batch_id", required=False)
@click.option("--row", "row_ids", type=int, multiple=True, help="Discard these rows instead (repeatable)")
@click.pass_context
def discard(ctx, batch_id: str | None, row_ids: tuple[int, ...]):
    """Discard a batch's pending rows, or specific rows."""
    service = get_ingest_service(ctx)

    try:
        count = service.queue.discard(batch_id=batch_id, row_ids=list(row_ids) if row_ids else None)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Discarded {count} rows")


def register_commands(cli):
    """Register queue commands with main CLI."""
    cli.add_command(queue_group, name="queue")
