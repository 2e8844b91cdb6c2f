import os
import sys
import json
import asyncio
import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.syntax import Syntax

console = Console()


@click.group()
@click.version_option(version="1.0.0", prog_name="scimcore")
def cli():
    """scimcore - SCIM 2.0 resource schema, validation and query engine

    Serves RFC 7643 resources over the RFC 7644 protocol and validates documents offline.
    """
    pass


@cli.group()
def run():
    """Run the SCIM server"""
    pass


@run.command()
@click.option('--host', '-h', default='0.0.0.0', help='Host to bind to')
@click.option('--port', '-p', default=8000, type=int, help='Port to bind to')
@click.option('--reload/--no-reload', default=True, help='Enable auto-reload')
def dev(host: str, port: int, reload: bool):
    """Run server in development mode"""
    console.print(Panel.fit(
        f"[bold green]Starting scimcore Development Server[/bold green]\n\n"
        f"[yellow]Host:[/yellow] {host}:{port}\n"
        f"[yellow]Docs:[/yellow] http://localhost:{port}/docs\n"
        f"[yellow]API:[/yellow]  http://localhost:{port}/scim/v2\n\n"
        f"[dim]Press CTRL+C to stop[/dim]",
        title="scimcore Dev Server"
    ))

    import uvicorn
    uvicorn.run(
        "scimcore.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
        access_log=True
    )


@run.command()
@click.option('--host', '-h', default='0.0.0.0', help='Host to bind to')
@click.option('--port', '-p', default=8000, type=int, help='Port to bind to')
@click.option('--workers', '-w', default=1, type=int, help='Number of worker processes')
def prod(host: str, port: int, workers: int):
    """Run server in production mode"""
    console.print(Panel.fit(
        f"[bold green]Starting scimcore Production Server[/bold green]\n\n"
        f"[yellow]Host:[/yellow] {host}:{port}\n"
        f"[yellow]Workers:[/yellow] {workers}\n"
        f"[yellow]API:[/yellow]  http://{host}:{port}/scim/v2\n\n"
        f"[dim]Press CTRL+C to stop[/dim]",
        title="scimcore Production Server"
    ))
    if workers > 1:
        console.print("[yellow]⚠[/yellow]  Each worker keeps its own resource map and uniqueness index")

    import uvicorn
    uvicorn.run(
        "scimcore.main:app",
        host=host,
        port=port,
        workers=workers,
        log_level="info",
        access_log=True
    )


@cli.command()
@click.option('--show-values', is_flag=True, help='Show actual configuration values')
def config(show_values: bool):
    """Display current configuration"""
    from scimcore.config import settings

    console.print("\n[bold]scimcore Configuration[/bold]\n")

    env_file = os.path.join(os.getcwd(), '.env')
    if os.path.exists(env_file):
        console.print(f"[green]✓[/green] Environment file: {env_file}")
    else:
        console.print(f"[yellow]⚠[/yellow]  No .env file found at: {env_file}")

    table = Table(title="Server Information")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    if settings.host in ['0.0.0.0', '127.0.0.1']:
        base_url = f"http://localhost:{settings.port}"
    else:
        base_url = f"http://{settings.host}:{settings.port}"

    table.add_row("SCIM Base URL", f"{base_url}{settings.api_prefix}")
    table.add_row("Environment", settings.environment)
    table.add_row("Storage", settings.storage_backend)
    table.add_row("Strict Attributes", "On" if settings.strict_attributes else "Off")
    table.add_row("Debug Mode", "On" if settings.debug else "Off")

    console.print(table)

    if show_values:
        console.print("\n[bold]Detailed Configuration:[/bold]\n")

        config_table = Table()
        config_table.add_column("Setting", style="cyan")
        config_table.add_column("Value")
        config_table.add_column("Description", style="dim")

        database_url = settings.database_url
        if '@' in database_url:
            database_url = "***@" + database_url.split('@', 1)[1]

        settings_groups = {
            "Server": [
                ("host", settings.host, "Server host"),
                ("port", settings.port, "Server port"),
                ("api_prefix", settings.api_prefix, "API route prefix"),
            ],
            "Storage": [
                ("storage_backend", settings.storage_backend, "Resource storage backend"),
                ("database_url", database_url, "Tortoise ORM connection"),
                ("storage_timeout", settings.storage_timeout, "Seconds per storage call"),
            ],
            "Application": [
                ("app_name", settings.app_name, "Application name"),
                ("environment", settings.environment, "Current environment"),
                ("debug", settings.debug, "Debug mode"),
                ("log_level", settings.log_level, "Logging level"),
                ("strict_attributes", settings.strict_attributes, "Reject undeclared attributes"),
            ],
            "Limits": [
                ("default_page_size", settings.default_page_size, "Default pagination size"),
                ("max_page_size", settings.max_page_size, "Maximum page size"),
            ],
        }

        for group_name, group_settings in settings_groups.items():
            config_table.add_row(f"[bold]{group_name}[/bold]", "", "")
            for setting_name, value, desc in group_settings:
                config_table.add_row(f"  {setting_name}", str(value), desc)

        console.print(config_table)

    console.print("\n[dim]Tip: Use --show-values to see all configuration values[/dim]")
    console.print("[dim]Tip: Create a .env file to override default settings[/dim]\n")


@cli.command()
@click.argument('schema_id', required=False)
def schemas(schema_id):
    """List registered schemas, or the attributes of one schema"""
    from scimcore.exceptions import NotFound
    from scimcore.services import build_default_registry

    registry = build_default_registry()

    if not schema_id:
        table = Table(title="Registered Schemas")
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Attributes", justify="right")
        for schema in registry.schemas():
            table.add_row(schema.id, schema.name, str(len(schema.attributes)))
        console.print(table)

        types_table = Table(title="Resource Types")
        types_table.add_column("Name", style="cyan")
        types_table.add_column("Endpoint", style="green")
        types_table.add_column("Extensions")
        for resource_type in registry.resource_types():
            extensions = ", ".join(
                f"{ext.schema_uri}{' (required)' if ext.required else ''}" for ext in resource_type.schema_extensions
            )
            types_table.add_row(resource_type.name, resource_type.endpoint, extensions or "-")
        console.print(types_table)
        return

    try:
        schema = registry.schema(schema_id)
    except NotFound as e:
        console.print(f"[red]✗ {e.detail}[/red]")
        sys.exit(1)

    table = Table(title=schema.id)
    table.add_column("Attribute", style="cyan")
    table.add_column("Type")
    table.add_column("Multi", justify="center")
    table.add_column("Required", justify="center")
    table.add_column("Mutability")
    table.add_column("Returned")
    table.add_column("Uniqueness")

    def add_rows(attributes, prefix=""):
        for attr in attributes:
            table.add_row(
                f"{prefix}{attr.name}",
                attr.type.value,
                "✓" if attr.multi_valued else "",
                "✓" if attr.required else "",
                attr.mutability.value,
                attr.returned.value,
                attr.uniqueness.value,
            )
            if attr.sub_attributes:
                add_rows(attr.sub_attributes, prefix=f"{prefix}{attr.name}.")

    add_rows(schema.attributes)
    console.print(table)


@cli.command()
@click.argument('document', type=click.File('r'))
@click.option('--type', '-t', 'resource_type', default='User', help='Resource type name or endpoint')
@click.option('--mode', '-m', type=click.Choice(['create', 'replace']), default='create', help='Validation mode')
@click.option('--lenient', is_flag=True, help='Drop undeclared attributes instead of rejecting them')
def validate(document, resource_type: str, mode: str, lenient: bool):
    """Validate a resource document against its schemas"""
    from scimcore.exceptions import SCIMException
    from scimcore.services import AttributeValidator, ValidationMode, build_default_registry

    try:
        payload = json.load(document)
    except json.JSONDecodeError as e:
        console.print(f"[red]✗ Invalid JSON: {e}[/red]")
        sys.exit(1)

    registry = build_default_registry()
    validator = AttributeValidator(registry, strict=False if lenient else None)

    try:
        rt = registry.resolve(resource_type)
        normalized = validator.validate(
            registry.base_schema(rt),
            registry.extensions_for(rt),
            payload,
            ValidationMode(mode),
        )
    except SCIMException as e:
        table = Table(title=f"Validation failed ({e.status_code} {e.scim_type or ''})".strip())
        table.add_column("Error", style="red")
        table.add_column("Detail")
        for error in e.errors:
            table.add_row(type(error).__name__, error.detail)
        console.print(table)
        sys.exit(1)

    console.print(f"[green]✓ Valid {rt.name} document[/green]\n")
    console.print(Syntax(json.dumps(normalized, indent=2, default=str), "json"))


@cli.command(name="filter")
@click.argument('expression')
def filter_command(expression: str):
    """Parse a SCIM filter expression and show its tree"""
    from scimcore.exceptions import MalformedFilter
    from scimcore.utils import SCIMFilterParser

    try:
        tree = SCIMFilterParser().parse(expression)
    except MalformedFilter as e:
        console.print(f"[red]✗ {e.detail}[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Parsed:[/green] {tree}")
    console.print(f"[dim]{tree!r}[/dim]")


@cli.group()
def db():
    """Database management commands"""
    pass


@db.command()
def init():
    """Initialize the database schema"""
    async def _init():
        from tortoise import Tortoise
        from tortoise.exceptions import BaseORMException
        from scimcore.config import settings

        console.print("[yellow]Initializing database...[/yellow]")

        try:
            await Tortoise.init(config=settings.tortoise_orm_config)
            await Tortoise.generate_schemas()

            console.print("[green]✓ Database initialized successfully![/green]")
            console.print(f"[dim]Connected to: {settings.database_url.split('@')[1] if '@' in settings.database_url else settings.database_url}[/dim]")

        except (BaseORMException, OSError) as e:
            console.print(f"[red]✗ Failed to initialize database: {e}[/red]")
            sys.exit(1)
        finally:
            await Tortoise.close_connections()

    asyncio.run(_init())


@db.command()
def status():
    """Check database connection status"""
    async def _status():
        from tortoise import Tortoise
        from tortoise.exceptions import BaseORMException
        from scimcore.config import settings
        from scimcore.models import StoredResource

        console.print("[yellow]Checking database connection...[/yellow]")

        try:
            await Tortoise.init(config=settings.tortoise_orm_config)

            counts = {}
            for row in await StoredResource.all().values("resource_type"):
                counts[row["resource_type"]] = counts.get(row["resource_type"], 0) + 1

            console.print("[green]✓ Database connection successful![/green]\n")

            table = Table(title="Database Status")
            table.add_column("Resource Type", style="cyan")
            table.add_column("Count", style="green")

            for name, count in sorted(counts.items()):
                table.add_row(name, str(count))
            if not counts:
                table.add_row("[dim]none[/dim]", "0")

            console.print(table)

        except (BaseORMException, OSError) as e:
            console.print(f"[red]✗ Database connection failed: {e}[/red]")
            console.print("[yellow]Check your DATABASE_URL in .env[/yellow]")
            sys.exit(1)
        finally:
            await Tortoise.close_connections()

    asyncio.run(_status())


if __name__ == '__main__':
    cli()
