"""Rendering of failures on the command line.

Every command failure is one "Error: ..." line on stderr and exit status 1.
"""

import click

from ledgerflow.domain.errors import DomainError, WebhookRejected
from ledgerflow.logging_setup import get_logger

logger = get_logger(__name__)


def fail(ctx: click.Context, message: object) -> None:
    """Print an error line and exit with failure."""
    click.echo(f"Error: {message}", err=True)
    ctx.exit(1)


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure.

    Rejected webhooks show the HTTP status a webhook endpoint would answer with.
    """
    logger.debug("Command %s failed: %r", ctx.info_name, error)
    if isinstance(error, WebhookRejected):
        click.echo(f"Error ({error.status_code}): {error}", err=True)
        ctx.exit(1)
    fail(ctx, error)
