#!/usr/bin/env python3
"""Vegandex CLI Client - Browse, add and review vegan products."""

from typing import Any, Dict, Optional, Tuple

import click
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .auth import CredentialStore, SessionManager
from .client import VegandexClient
from .config import ConfigManager
from .exceptions import VegandexAuthenticationError, VegandexClientError
from .logger import setup_logger

console = Console()


def build_session(settings: Dict[str, Any]) -> SessionManager:
    """Create the client, the store and the session manager, and restore the session."""
    client = VegandexClient(
        api_url=settings["api_url"],
        request_timeout=settings["request_timeout"],
    )
    session = SessionManager(client, CredentialStore(settings.get("store_path")))
    session.initialize()
    return session


def require_login(session: SessionManager) -> None:
    if not session.is_authenticated:
        console.print("[red]Error: You are not logged in.[/red]")
        console.print("[yellow]Please run '[bold cyan]vegandex login[/bold cyan]' first.[/yellow]")
        raise click.Abort()


def format_rating(value: Any) -> str:
    if value is None:
        return "-"
    try:
        return f"{float(value):.1f} ⭐"
    except (TypeError, ValueError):
        return str(value)


@click.group()
@click.option("--config", "-c", "config_path", help="Path to configuration JSON file")
@click.option("--api-url", help="Base URL of the Vegandex API (including /api)")
@click.option("--timeout", "request_timeout", type=float, help="Request timeout in seconds")
@click.option("--store", "store_path", help="Path of the credential store file")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level for diagnostics on stderr",
)
@click.option("--log-file", help="Also write debug logs to this file")
@click.pass_context
def cli(ctx, config_path: Optional[str], log_file: Optional[str], **cli_args):
    """Vegandex CLI Client - Browse, add and review vegan products."""
    config = ConfigManager.load_config(config_path)
    env = ConfigManager.load_environment()
    try:
        settings = ConfigManager.merge_config_with_args(config, env, **cli_args)
    except ValueError as e:
        raise click.BadParameter(str(e))

    setup_logger(settings["log_level"], log_file)
    settings["config_path"] = config_path
    ctx.obj = settings


@cli.command()
@click.option("--api-url", prompt="API URL", default="http://localhost:5000/api", help="Base URL of the Vegandex API")
@click.pass_obj
def init(settings: Dict[str, Any], api_url: str):
    """Write a configuration file with the API URL."""
    path = ConfigManager.save_config(
        {"api_url": api_url, "request_timeout": settings["request_timeout"]},
        settings.get("config_path"),
    )
    console.print(f"[green]✓ Configuration written to {path}[/green]")


@cli.command()
@click.option("--email", "-e", prompt=True, help="Account email")
@click.password_option("--password", "-p", confirmation_prompt=False, help="Account password")
@click.pass_obj
def login(settings: Dict[str, Any], email: str, password: str):
    """Log in and store the session on this device."""
    session = build_session(settings)
    if not session.login(email.strip(), password):
        console.print(f"[red]Login failed: {session.last_error}[/red]")
        raise click.Abort()
    console.print(f"[green]✓ Logged in as {session.profile.username}[/green]")


@cli.command()
@click.option("--username", "-u", prompt=True, help="Public username")
@click.option("--email", "-e", prompt=True, help="Account email")
@click.password_option("--password", "-p", help="Account password")
@click.pass_obj
def register(settings: Dict[str, Any], username: str, email: str, password: str):
    """Create an account and log in."""
    # click's password_option already asked for the confirmation
    session = build_session(settings)
    if not session.register(username.strip(), email.strip(), password):
        console.print(f"[red]Registration failed: {session.last_error}[/red]")
        raise click.Abort()
    console.print(f"[green]✓ Welcome, {session.profile.username}![/green]")


@cli.command()
@click.pass_obj
def logout(settings: Dict[str, Any]):
    """Log out and clear the stored session."""
    session = build_session(settings)
    was_logged_in = session.is_authenticated
    session.logout()
    if was_logged_in:
        console.print("[green]Logged out successfully[/green]")
    else:
        console.print("[yellow]You were not logged in.[/yellow]")


@cli.command()
@click.option("--refresh", is_flag=True, help="Re-fetch the profile from the server")
@click.pass_obj
def whoami(settings: Dict[str, Any], refresh: bool):
    """Show the logged-in user's profile."""
    session = build_session(settings)
    require_login(session)

    if refresh and not session.refresh_profile():
        console.print(f"[yellow]Could not refresh profile: {session.last_error}[/yellow]")
        require_login(session)

    profile = session.profile
    console.print(Panel(
        f"Username: [bold]{profile.username}[/bold]\n"
        f"Email: {profile.email}\n"
        f"Products added: [green]{len(profile.uploaded_products)}[/green]",
        title="[bold blue]👤 Profile[/bold blue]",
        border_style="blue"
    ))


@cli.command()
@click.pass_obj
def health(settings: Dict[str, Any]):
    """Check if the Vegandex server is reachable."""
    client = VegandexClient(api_url=settings["api_url"], request_timeout=settings["request_timeout"])
    status = client.health_check()
    if status.get("status") in ("healthy", "ok"):
        console.print(Panel("[green]✓ Server connection OK[/green]", border_style="green"))
    else:
        console.print(Panel(
            f"[red]Server health check failed - {status.get('message', 'Unknown error')}[/red]",
            title="[bold red]⚠️  Server Warning[/bold red]",
            border_style="red"
        ))
        raise click.Abort()


@cli.group()
def products():
    """Browse, add and review products."""
    pass


@products.command("search")
@click.option("--country", help="Only products available in this country")
@click.option("--search", "-s", "text", help="Free text search")
@click.option("--mine", is_flag=True, help="Only products you added")
@click.pass_obj
def search_products(settings: Dict[str, Any], country: Optional[str], text: Optional[str], mine: bool):
    """Search products by region or text."""
    session = build_session(settings)
    added_by = None
    if mine:
        require_login(session)
        added_by = session.profile.id

    try:
        results = session.client.search_products(country=country, search=text, added_by=added_by)
    except VegandexClientError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        raise click.Abort()

    if not results:
        console.print("[yellow]No products found.[/yellow]")
        return

    table = Table(title="🌱 Products", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Country")
    table.add_column("Rating", justify="right")
    for product in results:
        table.add_row(
            str(product.get("_id", "")),
            str(product.get("name", "")),
            str(product.get("category", "")),
            str(product.get("country", "")),
            format_rating(product.get("rating")),
        )
    console.print(table)


@products.command("show")
@click.argument("product_id")
@click.pass_obj
def show_product(settings: Dict[str, Any], product_id: str):
    """Show a product with its comments."""
    session = build_session(settings)
    try:
        product = session.client.get_product(product_id)
    except VegandexClientError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        raise click.Abort()

    console.print(Panel(
        f"Category: {product.get('category', '-')}\n"
        f"Country: {product.get('country', '-')}\n"
        f"Overall rating: {format_rating(product.get('rating'))}\n\n"
        f"{product.get('description', '')}\n\n"
        f"[dim]Ingredients: {product.get('ingredients') or '-'}[/dim]",
        title=f"[bold green]{product.get('name', product_id)}[/bold green]",
        border_style="green"
    ))

    comments = product.get("comments") or []
    if not comments:
        console.print("[yellow]No comments yet.[/yellow]")
        return
    for comment in comments:
        author = comment.get("user") or {}
        username = author.get("username", "unknown") if isinstance(author, dict) else str(author)
        console.print(Panel(
            f"{comment.get('text', '')}\n\n[dim]{comment.get('createdAt', '')}[/dim]",
            title=f"[bold]{username}[/bold] · {format_rating(comment.get('rating'))}",
            border_style="blue"
        ))


@products.command("add")
@click.option("--name", "-n", required=True, help="Product name")
@click.option("--category", required=True, help="Product category")
@click.option("--country", required=True, help="Country where the product is sold")
@click.option("--description", "-d", required=True, help="Short description")
@click.option("--ingredients", default="", help="Ingredient list")
@click.option(
    "--image", "images", multiple=True, type=click.Path(exists=True, dir_okay=False),
    help="Image file to upload (repeatable)",
)
@click.pass_obj
def add_product(settings: Dict[str, Any], images: Tuple[str, ...], **fields):
    """Add a new product."""
    session = build_session(settings)
    require_login(session)

    try:
        product = session.client.add_product(image_paths=images, **fields)
    except VegandexAuthenticationError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        console.print("[yellow]Your session may have expired. Please log in again.[/yellow]")
        raise click.Abort()
    except VegandexClientError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        raise click.Abort()

    product_id = product.get("_id")
    if product_id:
        session.record_uploaded_product(product_id)
    else:
        logger.warning("Created product has no _id; profile cache not updated")
    console.print(f"[green]✓ Product '{fields['name']}' added[/green]")


@products.command("comment")
@click.argument("product_id")
@click.option("--rating", "-r", required=True, type=click.IntRange(1, 5), help="Rating from 1 to 5")
@click.option("--text", "-t", required=True, help="Comment text")
@click.pass_obj
def comment_product(settings: Dict[str, Any], product_id: str, rating: int, text: str):
    """Rate and comment on a product."""
    session = build_session(settings)
    require_login(session)

    try:
        session.client.add_comment(product_id, text, rating)
    except VegandexClientError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        raise click.Abort()
    console.print("[green]✓ Comment posted[/green]")


@products.command("delete")
@click.argument("product_id")
@click.confirmation_option(prompt="Are you sure you want to delete this product?")
@click.pass_obj
def delete_product(settings: Dict[str, Any], product_id: str):
    """Delete one of your products."""
    session = build_session(settings)
    require_login(session)

    try:
        session.client.delete_product(product_id)
    except VegandexClientError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        raise click.Abort()
    console.print("[green]✓ Product deleted[/green]")


if __name__ == "__main__":
    cli()
