"""Import setup commands."""

import click
from ledgerflow.cli.account_resolution import resolve_optional_account
from ledgerflow.cli.error_handling import fail, handle_domain_error
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.errors import DomainError
from ledgerflow.domain.import_setup import ImportSetupService
from ledgerflow.domain.mapping_template import MappingTemplateService


@click.group()
def setup_group():
    """Manage automatic import sources."""
    pass


@setup_group.command("create")
@click.argument("name")
@click.option("--email", "email_address", help="Inbound address for an email setup")
@click.option("--provider", help="Bank-data provider for a bank setup")
@click.option("--token", "access_token", help="Provider access token for a bank setup")
@click.option("--ref", "account_refs", multiple=True, help="Linked provider account (repeatable)")
@click.option("--account", help="Target account name or ID")
@click.option("--template", help="Mapping template name or ID")
@click.option("--historical", is_flag=True, help="Import as history without balance effects")
@click.pass_context
def create_setup(
    ctx,
    name: str,
    email_address: str | None,
    provider: str | None,
    access_token: str | None,
    account_refs: tuple[str, ...],
    account: str | None,
    template: str | None,
    historical: bool,
):
    """Create an email or bank import setup.

    Give --email for an email setup, or --provider, --token and one or more
    --ref for a bank connection.

    Examples:
        ledgerflow setup create "Chase alerts" --email chase@imports.example --account Checking
        ledgerflow setup create "Teller" --provider teller --token tok_123 --ref acc_1 --ref acc_2
    """
    db = ctx.obj["db"]
    service = ImportSetupService(db)
    user_id = ctx.obj["user"]

    if (email_address is None) == (provider is None):
        fail(ctx, "Give either --email or --provider.")

    account_id = resolve_optional_account(ctx, AccountService(db), account)
    try:
        template_id = None
        if template is not None:
            template_id = MappingTemplateService(db).resolve_template(user_id, template).id
        if email_address is not None:
            setup_id = service.create_email_setup(
                user_id=user_id,
                name=name,
                email_address=email_address,
                account_id=account_id,
                template_id=template_id,
                is_historical=historical,
            )
        else:
            setup_id = service.create_bank_setup(
                user_id=user_id,
                name=name,
                provider=provider,
                access_token=access_token or "",
                account_refs=account_refs,
                account_id=account_id,
                template_id=template_id,
                is_historical=historical,
            )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created import setup '{name}' (ID: {setup_id})")


@setup_group.command("list")
@click.pass_context
def list_setups(ctx):
    """List import setups and their fetch status."""
    db = ctx.obj["db"]
    service = ImportSetupService(db)

    setups = service.list_setups(user_id=ctx.obj["user"])
    if not setups:
        click.echo("No import setups found.")
        return

    click.echo("\nImport setups:")
    click.echo("-" * 80)
    for s in setups:
        target = s.email_address or f"{s.provider}: {', '.join(s.account_refs)}"
        state = "active" if s.is_active else "disabled"
        click.echo(f"ID: {s.id:3d} | {s.name:20s} | {s.source_type:5s} | {target} | {state}")
        if s.last_error:
            click.echo(f"      last error ({s.error_count}x): {s.last_error}")


@setup_group.command("disable")
@click.argument("setup_id", type=int)
@click.pass_context
def disable_setup(ctx, setup_id: int):
    """Stop importing through a setup."""
    try:
        ImportSetupService(ctx.obj["db"]).set_active(setup_id, False)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Disabled import setup {setup_id}")


@setup_group.command("enable")
@click.argument("setup_id", type=int)
@click.pass_context
def enable_setup(ctx, setup_id: int):
    """Resume importing through a setup."""
    try:
        ImportSetupService(ctx.obj["db"]).set_active(setup_id, True)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Enabled import setup {setup_id}")


def register_commands(cli):
    """Register setup commands with main CLI."""
    cli.add_command(setup_group, name="setup")
