"""Balance audit commands."""

import click
from ledgerflow.cli.account_resolution import resolve_account_or_exit
from ledgerflow.cli.error_handling import fail, handle_domain_error
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.audit import AuditService
from ledgerflow.domain.category import CategoryService
from ledgerflow.domain.entities import SCOPE_ACCOUNT, SCOPE_CATEGORY
from ledgerflow.domain.errors import DomainError


@click.group()
def audit_group():
    """Inspect the balance audit trail."""
    pass


@audit_group.command("list")
@click.option("--account", help="Account name or ID")
@click.option("--category", help="Category path or ID")
@click.option("--transaction", "transaction_id", type=int, help="Transaction ID")
@click.pass_context
def list_entries(ctx, account: str | None, category: str | None, transaction_id: int | None):
    """List audit entries."""
    db = ctx.obj["db"]
    service = AuditService(db)

    if account is not None and category is not None:
        fail(ctx, "Give --account or --category, not both.")

    scope = entity_id = None
    if account is not None:
        scope, entity_id = SCOPE_ACCOUNT, resolve_account_or_exit(ctx, AccountService(db), account)
    elif category is not None:
        try:
            scope, entity_id = SCOPE_CATEGORY, CategoryService(db).resolve_category(category).id
        except DomainError as e:
            handle_domain_error(ctx, e)

    entries = service.list_entries(scope=scope, entity_id=entity_id, transaction_id=transaction_id)
    if not entries:
        click.echo("No audit entries found.")
        return

    for e in entries:
        click.echo(
            f"{e.id:5d} | {e.created_at:%Y-%m-%d %H:%M} | {e.scope:8s} {e.entity_id:<4d} | "
            f"{e.old_balance:>10.2f} -> {e.new_balance:>10.2f} ({e.change_amount:+.2f}) | "
            f"{e.change_type} | txn {e.transaction_id} | {e.actor}"
        )


@audit_group.command("verify")
@click.pass_context
def verify(ctx):
    """Check that every balance is explained by its audit trail."""
    service = AuditService(ctx.obj["db"])

    failures = [c for c in service.verify_all() if not c.ok]
    if not failures:
        click.echo("All balances match their audit trails.")
        return

    for c in failures:
        click.echo(
            f"Mismatch: {c.scope} {c.entity_id} '{c.name}': balance changed by "
            f"{c.expected_change:.2f} but audit records {c.audited_change:.2f}",
            err=True,
        )
    ctx.exit(1)


def register_commands(cli):
    """Register audit commands with main CLI."""
    cli.add_command(audit_group, name="audit")
