"""Category management commands."""

import click
from ledgerflow.cli.error_handling import fail, handle_domain_error
from ledgerflow.domain.category import CategoryService
from ledgerflow.domain.errors import DomainError
from ledgerflow.domain.transfer import TransferService
from ledgerflow.utils.amount_parser import parse_amount


def print_category_tree(categories: list[dict], indent: int = 0) -> None:
    """Recursively print category tree with envelope balances."""
    for cat in categories:
        prefix = "  " * indent
        click.echo(f"{prefix}{cat['name']} (ID: {cat['id']}) {cat['current_balance']:.2f}")
        if cat.get("children"):
            print_category_tree(cat["children"], indent + 1)


@click.group()
def category_group():
    """Manage categories."""
    pass


@category_group.command("list")
@click.pass_context
def list_categories(ctx):
    """List all categories in tree format."""
    db = ctx.obj["db"]
    service = CategoryService(db)

    tree = service.get_category_tree()
    if not tree:
        click.echo("No categories found. Run 'init-categories' to create default categories.")
        return

    click.echo("\nCategories:")
    print_category_tree(tree)


@category_group.command("create")
@click.argument("name")
@click.option("--parent", help="Parent category path (e.g., 'Food & Dining')")
@click.option("--initial-balance", default="0", help="Opening envelope balance (default: 0)")
@click.pass_context
def create_category(ctx, name: str, parent: str | None, initial_balance: str):
    """Create a new category."""
    db = ctx.obj["db"]
    service = CategoryService(db)

    try:
        balance = parse_amount(initial_balance)
        category_id = service.create_category(name=name, parent_path=parent, initial_balance=balance)
    except DomainError as e:
        handle_domain_error(ctx, e)
    except ValueError as e:
        fail(ctx, f"Invalid initial balance: {e}")
    parent_str = f" under '{parent}'" if parent else ""
    click.echo(f"Created category '{name}'{parent_str} (ID: {category_id})")


@category_group.command("delete")
@click.argument("category")
@click.pass_context
def delete_category(ctx, category: str):
    """Delete a category by path or ID."""
    db = ctx.obj["db"]
    service = CategoryService(db)

    try:
        cat = service.resolve_category(category)
        service.delete_category(cat.id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted category '{category}'")


@category_group.command("transfer")
@click.argument("source")
@click.argument("target")
@click.argument("amount")
@click.option("--note", help="Note stored with the transfer")
@click.pass_context
def transfer(ctx, source: str, target: str, amount: str, note: str | None):
    """Move AMOUNT from the SOURCE category envelope to TARGET."""
    db = ctx.obj["db"]
    service = CategoryService(db)

    try:
        value = parse_amount(amount)
    except ValueError as e:
        fail(ctx, f"Invalid amount: {e}")
    try:
        from_cat = service.resolve_category(source)
        to_cat = service.resolve_category(target)
        reference = TransferService(db).transfer(
            from_cat.id, to_cat.id, value, actor=ctx.obj["user"], description=note
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(
        f"Transferred {value:.2f} from '{service.format_category_path(from_cat.id)}' "
        f"to '{service.format_category_path(to_cat.id)}' (reference {reference[:12]})"
    )


def register_commands(cli):
    """Register category commands with main CLI."""
    cli.add_command(category_group, name="category")
