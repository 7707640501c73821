"""Initialize default envelope categories."""

import click
from ledgerflow.domain.category import CategoryService
from ledgerflow.domain.errors import DomainError


# Default envelopes as (name, parent path); parents are listed before children
INITIAL_CATEGORIES = [
    ("Income", None),
    ("Housing", None),
    ("Food", None),
    ("Transportation", None),
    ("Bills", None),
    ("Lifestyle", None),
    ("Savings", None),
    ("Salary", "Income"),
    ("Other Income", "Income"),
    ("Rent", "Housing"),
    ("Maintenance", "Housing"),
    ("Groceries", "Food"),
    ("Restaurants", "Food"),
    ("Coffee", "Food"),
    ("Fuel", "Transportation"),
    ("Public Transit", "Transportation"),
    ("Utilities", "Bills"),
    ("Phone & Internet", "Bills"),
    ("Subscriptions", "Bills"),
    ("Shopping", "Lifestyle"),
    ("Entertainment", "Lifestyle"),
    ("Health", "Lifestyle"),
    ("Emergency Fund", "Savings"),
]


def create_initial_categories(service: CategoryService) -> tuple[int, list[str]]:
    """Create the default envelopes.

    Returns:
        Tuple of (number created, error messages)
    """
    created = 0
    errors = []
    for name, parent in INITIAL_CATEGORIES:
        try:
            service.create_category(name=name, parent_path=parent)
            created += 1
        except DomainError as e:
            errors.append(f"Could not create category '{name}': {e}")
    return created, errors


@click.command("init-categories")
@click.option("--force", is_flag=True, help="Create defaults even if categories exist")
@click.pass_context
def init_categories(ctx, force: bool):
    """Initialize database with the default envelope tree."""
    db = ctx.obj["db"]
    service = CategoryService(db)

    if service.list_categories() and not force:
        click.echo("Categories already exist. Use --force to add the defaults anyway.")
        return

    click.echo("Creating initial category tree...")
    created, errors = create_initial_categories(service)
    for error in errors:
        click.echo(f"Warning: {error}", err=True)

    if not errors:
        click.echo(f"Successfully created {created} categories.")
    else:
        click.echo(f"Created {created} categories with {len(errors)} errors.")


def register_commands(cli):
    """Register init-categories command with main CLI."""
    cli.add_command(init_categories)
