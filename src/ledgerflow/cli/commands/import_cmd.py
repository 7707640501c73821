"""Import commands: files and email webhook payloads into the queue."""

import json

import click
from ledgerflow.cli.account_resolution import resolve_optional_account
from ledgerflow.cli.error_handling import fail, handle_domain_error
from ledgerflow.cli.services import get_ingest_service
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.errors import DomainError, ManualMappingRequired


def echo_queue_result(result: dict) -> None:
    """Print the counts of a queueing call."""
    click.echo(f"  Queued: {result['queued']} rows")
    click.echo(f"  Duplicates: {result['duplicates']} rows")
    if result["errors"]:
        click.echo(f"  Errors: {len(result['errors'])}")
        for error in result["errors"]:
            click.echo(f"    {error}", err=True)


def echo_manual_mapping(error: ManualMappingRequired) -> None:
    """Explain an inference failure and show the column scores."""
    click.echo(f"Error: {error}", err=True)
    analysis = error.analysis
    if analysis is not None:
        click.echo("Column analysis:", err=True)
        for col in analysis.columns:
            label = col.header or f"column {col.index}"
            click.echo(f"  {col.index}: {label:20s} -> {col.role or '?'}", err=True)
    if error.batch_id:
        click.echo(
            f"Rows were kept as batch {error.batch_id}; "
            f"run 'queue remap {error.batch_id} TEMPLATE --apply' once a template exists.",
            err=True,
        )


@click.group("import")
def import_group():
    """Import transactions into the review queue."""
    pass


@import_group.command("file")
@click.argument("csv_file", type=click.Path(exists=True))
@click.option("--account", help="Target account name or ID")
@click.option("--template", type=int, help="Mapping template ID (skips automatic matching)")
@click.option("--historical", is_flag=True, help="Import as history without balance effects")
@click.pass_context
def import_file(ctx, csv_file: str, account: str | None, template: int | None, historical: bool):
    """Import a CSV file.

    The column layout is matched against saved templates, or inferred and
    saved as a new template. Rows land in the queue for review.
    """
    db = ctx.obj["db"]
    service = get_ingest_service(ctx)
    account_id = resolve_optional_account(ctx, AccountService(db), account)

    try:
        result = service.import_file(
            csv_file,
            ctx.obj["user"],
            account_id=account_id,
            template_id=template,
            is_historical=historical,
        )
    except ManualMappingRequired as e:
        echo_manual_mapping(e)
        ctx.exit(1)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"\nImport queued as batch {result['batch_id']}:")
    if result["template_created"]:
        click.echo(f"  New mapping template saved (ID: {result['template_id']})")
    echo_queue_result(result)


@import_group.command("email")
@click.argument("payload_file", type=click.File("r"))
@click.pass_context
def import_email(ctx, payload_file):
    """Process an inbound email webhook payload (JSON)."""
    service = get_ingest_service(ctx)

    try:
        payload = json.load(payload_file)
    except json.JSONDecodeError as e:
        fail(ctx, f"Payload is not JSON: {e}")

    try:
        result = service.ingest_email(payload)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"\nEmail imported through setup {result['setup_id']}:")
    echo_queue_result(result)
    for batch_id in result["needs_mapping"]:
        click.echo(f"  Batch {batch_id} needs a mapping template")


def register_commands(cli):
    """Register import commands with main CLI."""
    cli.add_command(import_group)
