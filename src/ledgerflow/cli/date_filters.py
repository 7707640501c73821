"""CLI helpers for date range resolution."""

from datetime import date

import click

from ledgerflow.cli.error_handling import fail
from ledgerflow.utils.date_parser import get_date_range, parse_date

PERIODS = ("this-month", "this-year", "this-week", "last-month", "last-year", "last-week")


def date_range_options(func):
    """Add --start-date, --end-date and --period options to a command."""
    func = click.option(
        "--period", type=click.Choice(PERIODS), help="Named period instead of explicit dates"
    )(func)
    func = click.option("--end-date", help="End date (YYYY-MM-DD or relative like 'today')")(func)
    func = click.option("--start-date", help="Start date (YYYY-MM-DD or relative like 'last month')")(func)
    return func


def resolve_cli_date_range(
    ctx,
    *,
    start_date: str | None,
    end_date: str | None,
    period: str | None,
) -> tuple[date | None, date | None]:
    """Resolve CLI date range from a named period or explicit dates."""
    if period and (start_date or end_date):
        fail(ctx, "--period cannot be combined with --start-date or --end-date.")

    if period:
        return get_date_range(period)

    start = None
    end = None
    if start_date:
        try:
            start = parse_date(start_date)
        except ValueError as e:
            fail(ctx, f"Invalid start date: {e}")
    if end_date:
        try:
            end = parse_date(end_date)
        except ValueError as e:
            fail(ctx, f"Invalid end date: {e}")
    return start, end
