"""Near-duplicate review commands."""

import click
from ledgerflow.cli.account_resolution import resolve_optional_account
from ledgerflow.cli.date_filters import date_range_options, resolve_cli_date_range
from ledgerflow.cli.error_handling import handle_domain_error
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.duplicates import DuplicateDetector
from ledgerflow.domain.errors import DomainError


@click.group()
def duplicates_group():
    """Review possible duplicate transactions."""
    pass


@duplicates_group.command("scan")
@date_range_options
@click.option("--account", help="Account name or ID")
@click.option("--include-dismissed", is_flag=True, help="Also show dismissed groups")
@click.pass_context
def scan(ctx, start_date: str, end_date: str, period: str, account: str, include_dismissed: bool):
    """List groups of transactions that may be the same payment."""
    db = ctx.obj["db"]
    detector = DuplicateDetector(db, ctx.obj["config"].imports)
    account_id = resolve_optional_account(ctx, AccountService(db), account)
    start, end = resolve_cli_date_range(ctx, start_date=start_date, end_date=end_date, period=period)

    groups = detector.find_near_duplicates(
        ctx.obj["user"],
        account_id=account_id,
        start_date=start,
        end_date=end,
        include_dismissed=include_dismissed,
    )
    if not groups:
        click.echo("No possible duplicates found.")
        return

    for group in groups:
        dismissed = " (dismissed)" if group.dismissed else ""
        click.echo(f"\nAmount {group.amount:.2f}{dismissed}:")
        for txn in group.transactions:
            click.echo(f"  {txn.id:5d} | {txn.date} | {txn.description}")
    click.echo(f"\n{len(groups)} group(s). Use 'duplicates dismiss ID ID ...' to hide a group.")


@duplicates_group.command("dismiss")
@click.argument("transaction_ids", type=int, nargs=-1, required=True)
@click.pass_context
def dismiss(ctx, transaction_ids: tuple[int, ...]):
    """Mark a group of transactions as not duplicates."""
    detector = DuplicateDetector(ctx.obj["db"], ctx.obj["config"].imports)
    try:
        detector.dismiss(ctx.obj["user"], transaction_ids)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Dismissed group of {len(set(transaction_ids))} transactions")


@duplicates_group.command("delete")
@click.argument("keep_id", type=int)
@click.argument("remove_ids", type=int, nargs=-1, required=True)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx, keep_id: int, remove_ids: tuple[int, ...], yes: bool):
    """Keep KEEP_ID and delete its duplicates REMOVE_IDS, reversing their balances."""
    if not yes and not click.confirm(
        f"Delete {len(set(remove_ids))} transaction(s) and keep {keep_id}?"
    ):
        click.echo("Deletion cancelled")
        return

    detector = DuplicateDetector(ctx.obj["db"], ctx.obj["config"].imports)
    try:
        deleted = detector.delete_duplicates(ctx.obj["user"], keep_id, remove_ids)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted {len(deleted)} duplicate(s) of transaction {keep_id}")


def register_commands(cli):
    """Register duplicates commands with main CLI."""
    cli.add_command(duplicates_group, name="duplicates")
