"""Account lookup for --account options and arguments."""

from __future__ import annotations

import click
from ledgerflow.cli.error_handling import handle_domain_error
from ledgerflow.domain.account import AccountService
from ledgerflow.domain.errors import NotFoundError


def resolve_account_or_exit(
    ctx: click.Context, account_service: AccountService, account: str | int
) -> int:
    """Return the ID of the account named or numbered by ``account``."""
    try:
        return account_service.resolve_account(account).id
    except NotFoundError as e:
        handle_domain_error(ctx, e)


def resolve_optional_account(
    ctx: click.Context, account_service: AccountService, account: str | None
) -> int | None:
    if account is None:
        return None
    return resolve_account_or_exit(ctx, account_service, account)
