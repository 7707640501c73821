"""Committed transaction commands."""

import click
from ledgerflow.cli.account_resolution import resolve_optional_account
from ledgerflow.cli.date_filters import date_range_options, resolve_cli_date_range
from ledgerflow.cli.error_handling import handle_domain_error
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.errors import DomainError
from ledgerflow.domain.transaction import TransactionService


@click.group()
def transaction_group():
    """View committed transactions."""
    pass


@transaction_group.command("list")
@date_range_options
@click.option("--account", help="Account name or ID")
@click.pass_context
def list_transactions(ctx, start_date: str, end_date: str, period: str, account: str):
    """List committed transactions with optional filters."""
    db = ctx.obj["db"]
    service = TransactionService(db)
    account_id = resolve_optional_account(ctx, AccountService(db), account)
    start, end = resolve_cli_date_range(ctx, start_date=start_date, end_date=end_date, period=period)

    transactions = service.list_transactions(
        user_id=ctx.obj["user"], account_id=account_id, start_date=start, end_date=end
    )
    if not transactions:
        click.echo("No transactions found.")
        return

    click.echo(f"\n{'ID':>5} | {'Date':10} | {'Amount':>10} | {'Merchant':24} | Description")
    click.echo("-" * 90)
    for txn in transactions:
        merchant = service.merchants.display_name(txn)
        hist = " (historical)" if txn.is_historical else ""
        click.echo(
            f"{txn.id:5d} | {txn.date} | {txn.total_amount:>10.2f} | {merchant[:24]:24s} | "
            f"{txn.description}{hist}"
        )


@transaction_group.command("show")
@click.argument("transaction_id", type=int)
@click.pass_context
def show_transaction(ctx, transaction_id: int):
    """Show a transaction with its category splits."""
    service = TransactionService(ctx.obj["db"])

    try:
        detail = service.get_detail(transaction_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    txn = detail["transaction"]
    click.echo(f"\nTransaction {txn.id}: {txn.description}")
    click.echo(f"Date: {txn.date} | Amount: {txn.total_amount:.2f} | Type: {txn.transaction_type}")
    click.echo(f"Merchant: {detail['merchant']}")
    if txn.queued_import_id is not None:
        click.echo(f"Imported from queued row {txn.queued_import_id}")
    click.echo("Splits:")
    for split in detail["splits"]:
        click.echo(f"  {split['category']}: {split['amount']:.2f}")


def register_commands(cli):
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
