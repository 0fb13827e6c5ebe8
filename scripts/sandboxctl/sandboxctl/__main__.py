"""
Sandboxer Admin CLI - sandboxctl
Click-based tool for provisioning and inspecting sandboxes over the API.
"""

import json
import time
from typing import Optional

import click
import requests


# ============================================
# CLI Configuration
# ============================================

class Context:
    """CLI context for global settings."""
    
    def __init__(self):
        self.api_url: str = "http://localhost:8090"
        self.output_format: str = "table"
        self.quiet: bool = False


pass_context = click.make_pass_decorator(Context, ensure=True)


def setup_api_client(ctx: Context) -> requests.Session:
    """Create API client."""
    session = requests.Session()
    session.headers.update({"Content-Type": "application/json"})
    return session


def echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2))


# ============================================
# Base Commands
# ============================================

@click.group()
@click.option(
    "--api-url",
    default="http://localhost:8090",
    help="API URL for the orchestrator",
    envvar="SANDBOXER_API_URL",
)
@click.option(
    "--output",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.option(
    "--quiet",
    is_flag=True,
    help="Suppress output except errors",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str, output: str, quiet: bool):
    """Sandboxer Admin CLI"""
    ctx.ensure_object(Context)
    ctx.obj.api_url = api_url.rstrip("/")
    ctx.obj.output_format = output
    ctx.obj.quiet = quiet


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (defaults to settings)")
@click.option("--port", type=int, default=None, help="Bind port (defaults to settings)")
def serve(host: Optional[str], port: Optional[int]):
    """Run the orchestrator API server"""
    import uvicorn
    
    from sandboxer.core.config import get_settings
    
    settings = get_settings()
    uvicorn.run(
        "sandboxer.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


# ============================================
# Image Commands
# ============================================

@cli.command("images")
@click.option("--category", help="Filter by category")
@pass_context
def images(ctx: Context, category: Optional[str]):
    """List available images"""
    session = setup_api_client(ctx)
    
    try:
        response = session.get(f"{ctx.api_url}/containers/images")
        response.raise_for_status()
        catalog = response.json()
    except requests.RequestException as e:
        raise click.ClickException(str(e))
    
    if category:
        catalog = [img for img in catalog if img.get("category") == category]
    
    if ctx.output_format == "json":
        echo_json(catalog)
        return
    
    click.echo(f"{'ID':<18} {'Category':<24} {'Description'}")
    click.echo("-" * 80)
    for img in catalog:
        click.echo(f"{img['id']:<18} {img['category']:<24} {img['description']}")


# ============================================
# Container Commands
# ============================================

@cli.group()
def container():
    """Sandbox container commands"""
    pass


@container.command("create")
@click.argument("image_id")
@click.option("--password", default="", help="VNC password (generated when omitted)")
@click.option("--resolution", default="", help="Screen resolution, e.g. 1920x1080")
@click.option("--col-depth", type=int, default=0, help="Colour depth")
@click.option("--view-only", is_flag=True, help="Disable VNC input")
@click.option("--wait/--no-wait", default=False, help="Poll until the container is ready or failed")
@click.option("--timeout", type=int, default=300, help="Seconds to wait with --wait")
@pass_context
def container_create(
    ctx: Context,
    image_id: str,
    password: str,
    resolution: str,
    col_depth: int,
    view_only: bool,
    wait: bool,
    timeout: int,
):
    """Provision a new sandbox from IMAGE_ID"""
    session = setup_api_client(ctx)
    data = {
        "image_id": image_id,
        "vnc_config": {
            "password": password,
            "resolution": resolution,
            "colDepth": col_depth,
            "viewOnly": view_only,
        },
    }
    
    try:
        response = session.post(f"{ctx.api_url}/containers", json=data)
        response.raise_for_status()
        result = response.json()
    except requests.RequestException as e:
        raise click.ClickException(str(e))
    
    short_id = result["container_id"]
    if not ctx.quiet:
        click.echo(f"Container accepted: {short_id}")
    
    if wait:
        status = _wait_for_terminal(ctx, session, short_id, timeout)
        _print_status(ctx, status)
    elif ctx.output_format == "json":
        echo_json(result)


@container.command("status")
@click.argument("short_id")
@pass_context
def container_status(ctx: Context, short_id: str):
    """Show provisioning status of a sandbox"""
    session = setup_api_client(ctx)
    _print_status(ctx, _fetch_status(ctx, session, short_id))


@container.command("kill")
@click.argument("container_id")
@click.option("--force", is_flag=True, help="Skip confirmation")
@pass_context
def container_kill(ctx: Context, container_id: str, force: bool):
    """Kill a sandbox container by its Docker ID or name"""
    if not force:
        if not click.confirm(f"Kill container {container_id}?"):
            return
    
    session = setup_api_client(ctx)
    
    try:
        response = session.post(f"{ctx.api_url}/containers/{container_id}/kill")
        response.raise_for_status()
    except requests.RequestException as e:
        raise click.ClickException(str(e))
    
    if not ctx.quiet:
        click.echo(f"Container {container_id} killed")


def _fetch_status(ctx: Context, session: requests.Session, short_id: str) -> dict:
    try:
        response = session.get(f"{ctx.api_url}/containers/{short_id}/status")
        if response.status_code == 404:
            raise click.ClickException(f"Container {short_id} not found")
        response.raise_for_status()
        return response.json()
    except requests.RequestException as e:
        raise click.ClickException(str(e))


def _wait_for_terminal(
    ctx: Context,
    session: requests.Session,
    short_id: str,
    timeout: int,
) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        status = _fetch_status(ctx, session, short_id)
        if status.get("status") != "initializing":
            return status
        if time.monotonic() > deadline:
            raise click.ClickException(f"Timed out waiting for {short_id}")
        time.sleep(2)


def _print_status(ctx: Context, status: dict) -> None:
    if ctx.output_format == "json":
        echo_json(status)
        return
    
    click.echo(f"Container: {status.get('container_id')}")
    click.echo(f"Status:    {status.get('status')}")
    click.echo(f"Message:   {status.get('message')}")
    if status.get("docker_id"):
        click.echo(f"Docker ID: {status['docker_id']}")
    if status.get("error"):
        click.echo(f"Error:     {status['error']}")
    for name, path in (status.get("endpoints") or {}).items():
        if name != "container_id":
            click.echo(f"  {name}: {path}")


# ============================================
# Main Entry Point
# ============================================

if __name__ == "__main__":
    cli()
