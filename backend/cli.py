"""
Registro CLI.

Command-line interface for catalog inspection and audit maintenance.
"""

import sys
import time
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent))

import httpx
import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="registro",
    help="Registro dynamic-table API CLI",
    add_completion=False,
)
console = Console()


def _registry():
    from shared.config.settings import settings
    from shared.infrastructure.db import engine
    from registro_api.services.schema import SchemaRegistry, build_catalog_reader

    return SchemaRegistry(build_catalog_reader(engine, settings))


# =============================================================================
# Catalog Commands
# =============================================================================

@app.command()
def tables():
    """List the dynamic tables known to the catalog."""
    from shared.utils.exceptions import AppException

    try:
        names = _registry().reader.table_names()
    except AppException as e:
        console.print(f"[red]✗ {e.detail}[/red]")
        raise typer.Exit(1)

    table = Table(title="Dynamic tables")
    table.add_column("Table", style="cyan")
    for name in names:
        table.add_row(name)
    console.print(table)
    console.print(f"[green]{len(names)} tables[/green]")


@app.command()
def describe(
    table_name: str = typer.Argument(..., help="Table to describe"),
):
    """Show the resolved schema of a table."""
    from shared.utils.exceptions import AppException

    try:
        schema = _registry().get(table_name)
    except AppException as e:
        console.print(f"[red]✗ {e.detail}[/red]")
        raise typer.Exit(1)

    key_origin = "declared" if schema.primary_key_declared else "inferred"
    table = Table(title=f"{schema.display_name} (primary key: {schema.primary_key}, {key_origin})")
    table.add_column("#", style="dim")
    table.add_column("Column", style="cyan")
    table.add_column("Type")
    table.add_column("Category", style="yellow")
    table.add_column("Nullable")
    table.add_column("Default")
    table.add_column("References", style="magenta")

    for col in schema.columns:
        fk = schema.foreign_keys.get(col.name)
        table.add_row(
            str(col.ordinal_position),
            col.name,
            col.declared_type,
            col.category.value,
            "yes" if col.nullable else "no",
            col.default or "",
            f"{fk.target_table}.{fk.target_column}" if fk else "",
        )
    console.print(table)


# =============================================================================
# Audit Commands
# =============================================================================

@app.command()
def audit_list(
    table_name: str = typer.Option(None, "--table", "-t", help="Filter by table"),
    action: str = typer.Option(None, "--action", "-a", help="CREATE, UPDATE or DELETE"),
    actor: str = typer.Option(None, "--actor", help="Filter by actor email"),
    limit: int = typer.Option(20, "--limit", "-n", help="Entries to show"),
):
    """Show the most recent audit entries."""
    from shared.infrastructure.db import get_db_context
    from registro_api.services.audit import AuditFilters, AuditQueryService

    filters = AuditFilters(actor_email=actor, table_name=table_name, action=action, limit=limit)
    with get_db_context() as db:
        entries, total = AuditQueryService(db).list_entries(filters)

    table = Table(title=f"Audit log ({len(entries)} of {total})")
    table.add_column("ID", style="dim")
    table.add_column("When")
    table.add_column("Actor", style="cyan")
    table.add_column("Action", style="yellow")
    table.add_column("Table")
    table.add_column("Record")

    for entry in entries:
        table.add_row(
            str(entry.id),
            entry.occurred_at.strftime("%Y-%m-%d %H:%M:%S"),
            entry.actor_email or entry.actor_id or "-",
            entry.action,
            entry.table_name,
            entry.record_id or "",
        )
    console.print(table)


@app.command()
def audit_verify():
    """Verify the audit log hash chain."""
    from shared.infrastructure.db import get_db_context
    from registro_api.services.audit import verify_chain

    with get_db_context() as db:
        result = verify_chain(db)

    if result.valid:
        console.print(f"[green]✓ Audit chain intact ({result.checked} entries)[/green]")
        return
    console.print(
        f"[red]✗ Audit chain broken at entry {result.first_invalid_id}: {result.reason} "
        f"({result.checked} entries verified before it)[/red]"
    )
    raise typer.Exit(1)


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health(
    url: str = typer.Option("http://localhost:8000/health", help="REST API health URL"),
):
    """Check system health."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError
    from shared.infrastructure.db import get_db_context

    table = Table(title="Service Health")
    table.add_column("Service", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Response Time", style="yellow")

    start = time.time()
    try:
        response = httpx.get(url, timeout=5.0)
        elapsed = (time.time() - start) * 1000
        if response.status_code == 200:
            table.add_row("REST API", "✓ Healthy", f"{elapsed:.0f}ms")
        else:
            table.add_row("REST API", f"✗ Status {response.status_code}", f"{elapsed:.0f}ms")
    except httpx.HTTPError as e:
        table.add_row("REST API", f"✗ {type(e).__name__}", "-")

    start = time.time()
    try:
        with get_db_context() as db:
            db.execute(text("SELECT 1"))
        elapsed = (time.time() - start) * 1000
        table.add_row("Database", "✓ Healthy", f"{elapsed:.0f}ms")
    except SQLAlchemyError as e:
        table.add_row("Database", f"✗ {type(e).__name__}", "-")

    console.print(table)


@app.command()
def version():
    """Show version information."""
    table = Table(title="Registro Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("API", "0.1.0")
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
