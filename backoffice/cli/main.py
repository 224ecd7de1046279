"""Main CLI entry point."""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="backoffice",
    help="Training back office bulk operations CLI",
    add_completion=False,
)

console = Console()


def _load_request(path: Path) -> dict:
    """Read a bulk operation request document (same shape as the HTTP body)."""
    if not path.exists():
        raise typer.BadParameter(f"File not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path} must contain a JSON object")
    return data


def _resolve_operator(session, email: str):
    from backoffice.services.operators import find_operator

    operator = find_operator(session, email)
    if operator is None:
        console.print(f"[red]No active lab user with email {email}[/red]")
        raise typer.Exit(code=1)
    if not operator.is_admin:
        console.print(f"[red]{email} ({operator.role}) is not allowed to run bulk operations[/red]")
        raise typer.Exit(code=1)
    return operator


@app.command()
def init_db(
    force: bool = typer.Option(False, "--force", "-f", help="Drop and recreate tables"),
):
    """Initialize the database schema."""
    from db.connection import init_database

    with console.status("Initializing database..."):
        created = init_database(drop=force)
        if force:
            console.print("[yellow]Dropped existing tables[/yellow]")
    for name in created:
        console.print(f"  created [cyan]{name}[/cyan]")

    console.print("[green]Database initialized successfully[/green]")


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries to show"),
):
    """Show recent bulk operations, newest first."""
    from backoffice.services.operation_log import OperationLog
    from db.connection import get_session

    with get_session() as session:
        entries = OperationLog(session).list_recent(limit)

    if not entries:
        console.print("[yellow]No bulk operations recorded[/yellow]")
        return

    table = Table(title="Bulk Operations")
    table.add_column("ID", style="cyan")
    table.add_column("Operation")
    table.add_column("Table")
    table.add_column("Affected", justify="right", style="green")
    table.add_column("By")
    table.add_column("At")
    table.add_column("Rollback")

    for e in entries:
        table.add_row(
            e["id"],
            e["operation_type"],
            e["target_table"],
            str(e["affected_count"]),
            e["performed_by"],
            e["created_at"][:19],
            "yes" if e["has_rollback_data"] else "",
        )

    console.print(table)


@app.command()
def run(
    request_file: Path = typer.Argument(..., help="JSON request: operation, target_table, filters, parameters"),
    operator_email: str = typer.Option(..., "--operator", "-o", help="Email of the admin running the operation"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview matching records without changing anything"),
    output: Path | None = typer.Option(None, "--output", help="Where to write an export file"),
):
    """Run a bulk operation described by a JSON file."""
    from backoffice.services.bulk_operations import BulkOperationExecutor, BulkOperationRequest
    from backoffice.services.errors import BulkOperationError
    from backoffice.services.policy import load_table_policy
    from config import get_settings
    from db.connection import get_session

    data = _load_request(request_file)
    if dry_run:
        data["dry_run"] = True
    bulk = get_settings().bulk

    try:
        with get_session() as session:
            operator = _resolve_operator(session, operator_email)
            executor = BulkOperationExecutor.for_session(
                session,
                load_table_policy(bulk.policy_file),
                strict_filters=bulk.strict_filter_fields,
                preview_limit=bulk.preview_limit,
            )
            result = executor.execute(BulkOperationRequest.from_dict(data), operator)
    except BulkOperationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    if result.dry_run:
        console.print(f"[cyan]Dry run:[/cyan] {result.affected_count} records match")
        if result.preview:
            preview = Table(title=f"Preview ({len(result.preview)} of {result.affected_count})")
            columns = list(result.preview[0].keys())
            for col in columns:
                preview.add_column(col)
            for record in result.preview:
                preview.add_row(*("" if record.get(c) is None else str(record.get(c)) for c in columns))
            console.print(preview)
        return

    if result.export is not None:
        target = output or Path(result.export.filename)
        target.write_text(result.export.content, encoding="utf-8")
        console.print(f"[green]Exported {result.export.record_count} records to: {target}[/green]")
    else:
        console.print(f"[green]{result.message}[/green]")

    if result.operation_id:
        console.print(f"  Operation ID: {result.operation_id}")


@app.command()
def rollback(
    operation_id: str = typer.Argument(..., help="ID of the operation to undo"),
    operator_email: str = typer.Option(..., "--operator", "-o", help="Email of the admin running the rollback"),
):
    """Restore the records changed by a status or cohort operation."""
    from backoffice.services.errors import BulkOperationError
    from backoffice.services.policy import load_table_policy
    from backoffice.services.rollback import RollbackEngine
    from config import get_settings
    from db.connection import get_session

    try:
        with get_session() as session:
            operator = _resolve_operator(session, operator_email)
            engine = RollbackEngine.for_session(session, load_table_policy(get_settings().bulk.policy_file))
            result = engine.rollback(operation_id, operator)
    except BulkOperationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    color = "yellow" if result.failed_count else "green"
    console.print(f"[{color}]{result.message}[/{color}]")
    if result.rollback_operation_id:
        console.print(f"  Rollback entry: {result.rollback_operation_id}")


if __name__ == "__main__":
    app()
