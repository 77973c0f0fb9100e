"""CLI entry point for the Automaker desktop shell."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table as RichTable

from automaker_desktop.config import Config
from automaker_desktop.context_manager import ContextManager
from automaker_desktop.exceptions import AutomakerError
from automaker_desktop.readiness import ReadinessGate
from automaker_desktop.runtime_resolver import RuntimeResolver
from automaker_desktop.static_server import StaticAssetServer

console = Console()


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None):
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True,
    )


@click.group()
@click.option("--config", "-c", default=None, help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--packaged/--dev", default=None, help="Force packaged or dev mode")
@click.pass_context
def cli(ctx, config, verbose, packaged):
    """Automaker desktop shell."""
    ctx.ensure_object(dict)
    cfg = Config.load(config)
    if packaged is not None:
        cfg.app.packaged = packaged
    ctx.obj["config"] = cfg
    setup_logging("DEBUG" if verbose else cfg.app.log_level)


@cli.command()
@click.pass_context
def launch(ctx):
    """Open the desktop window (starts static server and backend first)."""
    from automaker_desktop.desktop import DesktopShell

    config = ctx.obj["config"]
    setup_logging(config.app.log_level, config.log_path / "launcher.log")
    sys.exit(DesktopShell(config).run())


@cli.command()
@click.pass_context
def run(ctx):
    """Start static server and backend without a window; Ctrl-C to stop."""
    from automaker_desktop.desktop import run_headless

    config = ctx.obj["config"]
    console.print(f"[bold green]Starting {config.app.name} (headless)...[/bold green]")
    code = asyncio.run(run_headless(config))
    if code:
        console.print("[red]Startup failed - see log output above[/red]")
    sys.exit(code)


@cli.command("resolve-runtime")
def resolve_runtime():
    """Show where Node.js would be found and which candidates were checked."""
    resolver = RuntimeResolver()

    table = RichTable(title="Node.js Candidates")
    table.add_column("Path", style="cyan")
    table.add_column("Exists", style="green")
    for path in resolver.candidates():
        table.add_row(str(path), "yes" if resolver.is_file(path) else "no")
    console.print(table)

    node = asyncio.run(resolver.resolve())
    console.print(f"\nResolved: [bold]{node}[/bold]")


@cli.command("serve-static")
@click.option("--root", default=None, help="Static build directory")
@click.option("--port", default=None, type=int, help="Port to listen on")
@click.pass_context
def serve_static(ctx, root, port):
    """Serve the static UI build until interrupted."""
    config = ctx.obj["config"]
    server = StaticAssetServer(Path(root) if root else config.static_root)
    port = port or config.static.port

    async def _serve():
        handle = await server.listen(port)
        console.print(f"Serving [blue]{server.root}[/blue] at {handle.url}")
        try:
            await asyncio.Event().wait()
        finally:
            await server.close(handle)

    try:
        asyncio.run(_serve())
    except AutomakerError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


@cli.command("check-health")
@click.option("--url", default=None, help="Health URL (defaults to the backend)")
@click.option("--attempts", default=None, type=int, help="Maximum probe attempts")
@click.pass_context
def check_health(ctx, url, attempts):
    """Poll the backend health endpoint like startup does."""
    config = ctx.obj["config"]
    url = url or config.health_url
    readiness = config.readiness
    gate = ReadinessGate()
    try:
        asyncio.run(
            gate.wait_until_ready(
                url,
                max_attempts=attempts or readiness.max_attempts,
                interval=readiness.interval,
                probe_timeout=readiness.probe_timeout,
            )
        )
    except AutomakerError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        sys.exit(1)
    console.print(f"[bold green]Healthy[/bold green] after {gate.attempts} attempt(s): {url}")


@cli.group()
def context():
    """Manage per-feature agent context files."""


@context.command("read")
@click.argument("project_path")
@click.argument("feature_id")
def context_read(project_path, feature_id):
    content = ContextManager().read(project_path, feature_id)
    if content is None:
        console.print(f"[yellow]No context file for {feature_id}[/yellow]")
        sys.exit(1)
    click.echo(content, nl=False)


@context.command("write")
@click.argument("project_path")
@click.argument("feature_id")
@click.argument("content")
def context_write(project_path, feature_id, content):
    ContextManager().write(project_path, feature_id, content)


@context.command("delete")
@click.argument("project_path")
@click.argument("feature_id")
def context_delete(project_path, feature_id):
    ContextManager().delete(project_path, feature_id)


if __name__ == "__main__":
    cli()
