"""Mapping template commands."""

from typing import Optional, Sequence

import click
from ledgerflow.adapters.csv_upload import read_csv_file
from ledgerflow.cli.error_handling import handle_domain_error
from ledgerflow.domain.column_analyzer import detect_headers
from ledgerflow.domain.entities import SIGN_CONVENTIONS, SOURCE_CSV
from ledgerflow.domain.errors import DomainError, ValidationError
from ledgerflow.domain.mapping_template import MappingTemplateService, structural_fingerprint


def column_index(headers: Optional[Sequence[str]], ref: Optional[str]) -> Optional[int]:
    """Resolve a column given as a 0-based index or a header name."""
    if ref is None:
        return None
    if ref.isdigit():
        return int(ref)
    if headers:
        for index, header in enumerate(headers):
            if header.strip().lower() == ref.strip().lower():
                return index
    raise ValidationError(f"Column '{ref}' not found in the file header")


@click.group()
def template_group():
    """Manage mapping templates."""
    pass


@template_group.command("create")
@click.argument("name")
@click.argument("csv_file", type=click.Path(exists=True))
@click.option("--date", "date_col", required=True, help="Date column (header name or 0-based index)")
@click.option("--description", "description_col", help="Description column")
@click.option("--amount", "amount_col", help="Signed amount column")
@click.option("--debit", "debit_col", help="Money-out column (with --credit)")
@click.option("--credit", "credit_col", help="Money-in column (with --debit)")
@click.option("--status", "status_col", help="Pending/posted column")
@click.option("--type", "type_col", help="Debit/credit indicator column (separate_column sign)")
@click.option("--sign", type=click.Choice(SIGN_CONVENTIONS), help="Amount sign convention")
@click.option("--date-format", help="strptime date format (detected per value when omitted)")
@click.option("--skip-rows", type=int, default=0, help="Rows to skip before the header")
@click.pass_context
def create_template(
    ctx,
    name: str,
    csv_file: str,
    date_col: str,
    description_col: str | None,
    amount_col: str | None,
    debit_col: str | None,
    credit_col: str | None,
    status_col: str | None,
    type_col: str | None,
    sign: str | None,
    date_format: str | None,
    skip_rows: int,
):
    """Create a template for the layout of CSV_FILE.

    The file's structural fingerprint is stored with the template, so later
    imports of files with the same layout use it automatically.

    Examples:
        ledgerflow template create "Chase" statement.csv --date "Posting Date" --amount Amount --description Description
        ledgerflow template create "Amex" amex.csv --date 0 --debit 2 --credit 3 --description 1
    """
    db = ctx.obj["db"]
    service = MappingTemplateService(db)

    try:
        all_rows = read_csv_file(csv_file).cells
        rows = all_rows[skip_rows:]
        has_headers = bool(rows) and detect_headers(rows)
        headers = rows[0] if has_headers else None
        template_id = service.create_template(
            user_id=ctx.obj["user"],
            name=name,
            source_type=SOURCE_CSV,
            fingerprint=structural_fingerprint(SOURCE_CSV, all_rows),
            column_count=len(rows[0]) if rows else 0,
            date_column=column_index(headers, date_col),
            description_column=column_index(headers, description_col),
            amount_column=column_index(headers, amount_col),
            debit_column=column_index(headers, debit_col),
            credit_column=column_index(headers, credit_col),
            status_column=column_index(headers, status_col),
            type_column=column_index(headers, type_col),
            sign_convention=sign,
            date_format=date_format,
            has_headers=has_headers,
            skip_rows=skip_rows,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created mapping template '{name}' (ID: {template_id})")


@template_group.command("list")
@click.pass_context
def list_templates(ctx):
    """List mapping templates."""
    db = ctx.obj["db"]
    service = MappingTemplateService(db)

    templates = service.list_templates(ctx.obj["user"])
    if not templates:
        click.echo("No mapping templates found.")
        return

    click.echo("\nMapping templates:")
    click.echo("-" * 80)
    for t in templates:
        click.echo(
            f"ID: {t.id:3d} | {t.name:30s} | {t.source_type:5s} | {t.sign_convention:22s} | "
            f"used {t.usage_count}x"
        )


@template_group.command("show")
@click.argument("template")
@click.pass_context
def show_template(ctx, template: str):
    """Show a template's column layout."""
    db = ctx.obj["db"]
    service = MappingTemplateService(db)

    try:
        t = service.resolve_template(ctx.obj["user"], template)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"\nTemplate: {t.name} (ID: {t.id})")
    click.echo(f"Fingerprint: {t.fingerprint}")
    click.echo(f"Columns: {t.column_count} | Headers: {'yes' if t.has_headers else 'no'} | Skip rows: {t.skip_rows}")
    click.echo(f"Sign convention: {t.sign_convention}")
    click.echo(f"Date format: {t.date_format or 'auto'}")
    for role in ("date", "description", "amount", "debit", "credit", "status", "type"):
        index = getattr(t, f"{role}_column")
        if index is not None:
            click.echo(f"  {role:12s} -> column {index}")


@template_group.command("delete")
@click.argument("template")
@click.pass_context
def delete_template(ctx, template: str):
    """Delete a template not used by any import setup."""
    db = ctx.obj["db"]
    service = MappingTemplateService(db)

    try:
        t = service.resolve_template(ctx.obj["user"], template)
        service.delete_template(t.id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted mapping template '{t.name}'")


def register_commands(cli):
    """Register template commands with main CLI."""
    cli.add_command(template_group, name="template")
