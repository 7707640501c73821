"""Account management commands."""

import click
from ledgerflow.cli.account_resolution import resolve_account_or_exit
from ledgerflow.cli.error_handling import fail, handle_domain_error
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.errors import DomainError
from ledgerflow.utils.amount_parser import parse_amount


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option("--bank", help="Bank name (defaults to account name if not provided)")
@click.option("--credit-card", is_flag=True, help="Balance tracks the amount owed")
@click.option("--initial-balance", default="0", help="Opening balance (default: 0)")
@click.pass_context
def create_account(ctx, name: str, bank: str | None, credit_card: bool, initial_balance: str):
    """Create a new account.

    If --bank is not provided, the bank name will be set to the account name.

    Examples:
        ledgerflow account create "Checking" --bank "Chase" --initial-balance 1200
        ledgerflow account create "Visa" --credit-card
    """
    db = ctx.obj["db"]
    service = AccountService(db)

    bank_name = bank if bank is not None else name

    try:
        balance = parse_amount(initial_balance)
        account_id = service.create_account(
            name=name, bank_name=bank_name, is_credit_card=credit_card, initial_balance=balance
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    except ValueError as e:
        fail(ctx, f"Invalid initial balance: {e}")
    kind = "credit card" if credit_card else "account"
    click.echo(f"Created {kind} '{name}' (ID: {account_id})")


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all accounts with balances."""
    db = ctx.obj["db"]
    service = AccountService(db)

    accounts = service.list_accounts()
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 72)
    for acc in accounts:
        card = " (card)" if acc.is_credit_card else ""
        click.echo(
            f"ID: {acc.id:3d} | {acc.name + card:24s} | Bank: {acc.bank_name:16s} | "
            f"Balance: {acc.current_balance:>12.2f}"
        )


@account_group.command("rename")
@click.argument("account", metavar="ACCOUNT")
@click.argument("new_name", metavar="NEW_NAME")
@click.option("--bank", help="New bank name (optional)")
@click.pass_context
def rename_account(ctx, account: str, new_name: str, bank: str | None) -> None:
    """Rename an account.

    ACCOUNT can be an account name or ID.
    """
    db = ctx.obj["db"]
    service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, service, account)

    try:
        service.rename_account(account_id=account_id, name=new_name, bank_name=bank)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Renamed account to '{new_name}'")
    if bank is not None:
        click.echo(f"Bank name updated to '{bank}'")


@account_group.command("delete")
@click.argument("account", metavar="ACCOUNT")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_account(ctx, account: str, yes: bool) -> None:
    """Delete an account.

    The account can only be deleted if no transactions or import setups
    reference it.
    """
    db = ctx.obj["db"]
    service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, service, account)
    account_obj = service.get_account(account_id)

    if not yes and not click.confirm(
        f"Are you sure you want to delete account '{account_obj.name}' (ID: {account_id})?"
    ):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_account(account_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted account '{account_obj.name}'")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
