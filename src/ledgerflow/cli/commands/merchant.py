"""Merchant commands."""

import click
from ledgerflow.cli.error_handling import handle_domain_error
from ledgerflow.cli.services import get_ingest_service
from ledgerflow.domain.errors import DomainError


@click.group()
def merchant_group():
    """Manage merchant identities."""
    pass


@merchant_group.command("list")
@click.option("--global", "show_global", is_flag=True, help="List the shared merchant dictionary")
@click.pass_context
def list_merchants(ctx, show_global: bool):
    """List your merchant groups, or the global merchants."""
    merchants = get_ingest_service(ctx).merchants

    if show_global:
        items = merchants.list_global_merchants()
        if not items:
            click.echo("No global merchants found.")
            return
        for m in items:
            patterns = ", ".join(p.pattern for p in ctx.obj["db"].list_global_patterns(m.id))
            click.echo(f"ID: {m.id:3d} | {m.display_name:24s} | {patterns}")
        return

    groups = merchants.list_groups(ctx.obj["user"])
    if not groups:
        click.echo("No merchant groups found.")
        return
    for g in groups:
        linked = f" -> global {g.global_merchant_id}" if g.global_merchant_id else ""
        click.echo(f"ID: {g.id:3d} | {g.display_name}{linked}")


@merchant_group.command("add")
@click.argument("name")
@click.option("--pattern", "patterns", multiple=True, help="Description pattern (repeatable)")
@click.pass_context
def add_global_merchant(ctx, name: str, patterns: tuple[str, ...]):
    """Add a global merchant with description patterns."""
    merchants = get_ingest_service(ctx).merchants
    try:
        merchant_id = merchants.create_global_merchant(name, patterns)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created global merchant '{name}' (ID: {merchant_id})")


@merchant_group.command("link")
@click.argument("group_id", type=int)
@click.argument("global_id", type=int)
@click.pass_context
def link_group(ctx, group_id: int, global_id: int):
    """Link one of your merchant groups to a global merchant."""
    merchants = get_ingest_service(ctx).merchants
    try:
        linked_id = merchants.link_group(group_id, global_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Group {linked_id} is linked to global merchant {global_id}")


@merchant_group.command("merge")
@click.argument("source_id", type=int)
@click.argument("target_id", type=int)
@click.pass_context
def merge_merchants(ctx, source_id: int, target_id: int):
    """Merge global merchant SOURCE_ID into TARGET_ID."""
    merchants = get_ingest_service(ctx).merchants
    try:
        result = merchants.merge(source_id, target_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"\nMerged merchant {source_id} into {target_id}:")
    click.echo(f"  Patterns moved: {result['patterns_moved']}")
    click.echo(f"  Groups updated: {result['groups_updated']}")
    click.echo(f"  Transactions resynced: {result['transactions_resynced']}")


def register_commands(cli):
    """Register merchant commands with main CLI."""
    cli.add_command(merchant_group, name="merchant")
