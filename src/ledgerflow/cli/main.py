"""Main CLI entry point."""

from pathlib import Path

import click
from ledgerflow.cli.error_handling import fail
from ledgerflow.config import ConfigValidationError, load_config
from ledgerflow.database.factories import create_sqlite_database
from ledgerflow.logging_setup import configure_logging

# Import and register all commands at module level
from ledgerflow.cli.commands import (
    account,
    audit,
    category,
    duplicates,
    import_cmd,
    init_categories,
    merchant,
    queue,
    setup,
    template,
    transaction,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides LEDGERFLOW_DB_PATH and the config file)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Path to YAML config file (default: ~/.ledgerflow/config.yaml)",
)
@click.option("--log-level", help="Log level (DEBUG, INFO, WARNING, ...)")
@click.option("--user", "user_id", help="User the command acts for (default from config)")
@click.pass_context
def cli(ctx, db_path: str | None, config_path: str | None, log_level: str | None, user_id: str | None):
    """Ledgerflow - Transaction import and reconciliation.

    Import bank statements from files, email and bank connections, review
    and categorize them in a queue, and commit them into an audited
    envelope-budget ledger.
    """
    ctx.ensure_object(dict)

    try:
        config = load_config(Path(config_path) if config_path else None)
        problems = config.validate()
        if problems:
            raise ConfigValidationError("; ".join(problems))
    except ConfigValidationError as e:
        fail(ctx, f"Invalid configuration: {e}")

    configure_logging(log_level or config.log_level)
    ctx.obj["config"] = config
    ctx.obj["user"] = user_id or config.default_user

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(db_path or config.db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
account.register_commands(cli)
category.register_commands(cli)
init_categories.register_commands(cli)
template.register_commands(cli)
setup.register_commands(cli)
import_cmd.register_commands(cli)
queue.register_commands(cli)
transaction.register_commands(cli)
merchant.register_commands(cli)
duplicates.register_commands(cli)
audit.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()
