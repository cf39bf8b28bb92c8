"""
WhatsApp Integration CLI

Command-line interface for operating tenant WhatsApp integrations.

Commands:
- init-db: Create tables
- create-org: Create a tenant organization
- manual-setup: Configure a tenant with manually entered credentials
- refresh: Re-fetch account data with the stored credentials
- update-token: Replace a tenant's access token
- show-config: Show a tenant's config (credentials redacted)
- validate: Validate a tenant's config
- webhook-config: Show the callback URL and verify token for a tenant
- sync-templates: Pull templates from Meta
- list-templates: List locally stored templates
- send-test: Send a test text message
"""

import asyncio
from typing import Optional
from uuid import UUID

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from whatsapp_integration.contracts.config import ManualSetupCredentials
from whatsapp_integration.core.db import get_engine, open_session
from whatsapp_integration.errors import WhatsAppError
from whatsapp_integration.persistence.models import WhatsAppBase
from whatsapp_integration.persistence.repo import WhatsAppRepository
from whatsapp_integration.providers import ProviderError, get_gateway
from whatsapp_integration.routing.tenant_resolver import TenantResolver
from whatsapp_integration.service.config_store import ConfigStore
from whatsapp_integration.service.embedded_signup import EmbeddedSignupService
from whatsapp_integration.service.manual_setup import ManualSetupService
from whatsapp_integration.service.messaging import WhatsAppService

app = typer.Typer(
    name="whatsapp-integration",
    help="WhatsApp Business integration CLI",
)

console = Console()


def get_db():
    """Get database session."""
    return open_session()


def _parse_org_id(organization_id: str) -> UUID:
    try:
        return UUID(organization_id)
    except ValueError:
        rprint(f"[red]Invalid organization ID: {organization_id}[/red]")
        raise typer.Exit(1)


def _run(coro_factory):
    """Run an async service call with a fresh gateway, closing it afterwards."""
    gateway = get_gateway()

    async def runner():
        try:
            return await coro_factory(gateway)
        finally:
            await gateway.close()

    try:
        return asyncio.run(runner())
    except (WhatsAppError, ProviderError) as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _print_config_summary(config) -> None:
    rprint(f"  WABA ID: {config.waba_id}")
    rprint(f"  Phone Number ID: {config.phone_number_id}")
    rprint(f"  Display: {config.display_phone_number}")
    rprint(f"  Verified name: {config.verified_name}")
    rprint(f"  Quality rating: {config.quality_rating}")
    rprint(f"  Account review: {config.account_review_status}")


@app.command()
def init_db():
    """Create all integration tables (development convenience)."""
    WhatsAppBase.metadata.create_all(get_engine())
    rprint("[green]Tables created[/green]")


@app.command()
def create_org(
    name: str = typer.Argument(..., help="Organization name"),
    slug: str = typer.Argument(..., help="Unique slug (also the webhook verify token)"),
):
    """Create a tenant organization."""
    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        if repo.find_org_by_slug(slug):
            rprint(f"[yellow]Organization with slug '{slug}' already exists[/yellow]")
            raise typer.Exit(1)
        org = repo.create_org(name=name, slug=slug)
        repo.commit()
        rprint(f"[green]Created organization {org.id}[/green] ({slug})")
    finally:
        db.close()


@app.command()
def manual_setup(
    organization_id: str = typer.Argument(..., help="Organization UUID"),
    access_token: str = typer.Option(..., help="Permanent access token (EAA...)"),
    app_id: str = typer.Option(..., help="Meta app ID"),
    phone_number_id: str = typer.Option(..., help="WhatsApp phone number ID"),
    waba_id: str = typer.Option(..., help="WhatsApp Business Account ID"),
):
    """
    Configure a tenant with manually entered credentials.

    The token is verified against the WABA and the phone number must belong to it.
    """
    org_id = _parse_org_id(organization_id)
    credentials = ManualSetupCredentials(
        access_token=access_token,
        app_id=app_id,
        phone_number_id=phone_number_id,
        waba_id=waba_id,
    )

    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        config = _run(
            lambda gateway: ManualSetupService(repo, gateway).setup_manual_configuration(org_id, credentials)
        )
        rprint("[green]WhatsApp configured:[/green]")
        _print_config_summary(config)
    finally:
        db.close()


@app.command()
def refresh(organization_id: str = typer.Argument(..., help="Organization UUID")):
    """Re-fetch account data using the stored credentials."""
    org_id = _parse_org_id(organization_id)
    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        config = _run(lambda gateway: ManualSetupService(repo, gateway).refresh_configuration(org_id))
        rprint("[green]Configuration refreshed:[/green]")
        _print_config_summary(config)
    finally:
        db.close()


@app.command()
def update_token(
    organization_id: str = typer.Argument(..., help="Organization UUID"),
    access_token: str = typer.Argument(..., help="New access token"),
):
    """Replace the access token and re-validate the configuration."""
    org_id = _parse_org_id(organization_id)
    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        _run(lambda gateway: ManualSetupService(repo, gateway).update_access_token(org_id, access_token))
        rprint("[green]Access token updated[/green]")
    finally:
        db.close()


@app.command()
def show_config(organization_id: str = typer.Argument(..., help="Organization UUID")):
    """Show the stored configuration without credentials."""
    org_id = _parse_org_id(organization_id)
    db = get_db()
    try:
        store = ConfigStore(WhatsAppRepository(db))
        config = store.get(org_id)
        if config is None:
            rprint(f"[yellow]No WhatsApp configuration for {organization_id}[/yellow]")
            raise typer.Exit(1)

        table = Table(title=f"WhatsApp config for {organization_id}")
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for key, value in store.public_view(config).items():
            table.add_row(key, str(value))
        console.print(table)
    finally:
        db.close()


@app.command()
def validate(organization_id: str = typer.Argument(..., help="Organization UUID")):
    """Validate the stored configuration (including a live token check)."""
    org_id = _parse_org_id(organization_id)
    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        result = _run(lambda gateway: EmbeddedSignupService(repo, gateway).validate_config(org_id))

        for error in result.errors:
            rprint(f"[red]✗ {error}[/red]")
        for warning in result.warnings:
            rprint(f"[yellow]! {warning}[/yellow]")
        if result.is_valid:
            rprint("[green]✓ Configuration is valid[/green]")
        else:
            raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def webhook_config(organization_id: str = typer.Argument(..., help="Organization UUID")):
    """Show the webhook URL and verify token to register with Meta."""
    org_id = _parse_org_id(organization_id)
    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        try:
            config = TenantResolver(repo).webhook_config(org_id)
        except WhatsAppError as e:
            rprint(f"[red]{e}[/red]")
            raise typer.Exit(1)
        rprint(f"  Webhook URL: {config['webhook_url']}")
        rprint(f"  Verify token: {config['verify_token']}")
    finally:
        db.close()


@app.command()
def sync_templates(organization_id: str = typer.Argument(..., help="Organization UUID")):
    """Pull message templates from Meta into the local store."""
    org_id = _parse_org_id(organization_id)
    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        count = _run(lambda gateway: WhatsAppService(org_id, repo, gateway).sync_templates())
        rprint(f"[green]Synced {count} templates[/green]")
    finally:
        db.close()


@app.command()
def list_templates(organization_id: str = typer.Argument(..., help="Organization UUID")):
    """List locally stored templates."""
    org_id = _parse_org_id(organization_id)
    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        templates = repo.list_templates(org_id)
        if not templates:
            rprint("[yellow]No templates found[/yellow]")
            return

        table = Table(title=f"Templates for {organization_id}")
        table.add_column("Meta ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Language")
        table.add_column("Category")
        table.add_column("Status", style="green")
        for template in templates:
            table.add_row(
                template.meta_id,
                template.name,
                template.language,
                template.category,
                template.status,
            )
        console.print(table)
    finally:
        db.close()


@app.command()
def send_test(
    organization_id: str = typer.Argument(..., help="Organization UUID"),
    to: str = typer.Argument(..., help="Recipient phone number (e.g., 5511999999999)"),
    text: str = typer.Option("Test message from WhatsApp integration", help="Message text"),
    conversation_id: Optional[str] = typer.Option(None, help="Conversation ID to file the message under"),
):
    """Send a test text message."""
    org_id = _parse_org_id(organization_id)
    db = get_db()
    try:
        repo = WhatsAppRepository(db)
        result = _run(
            lambda gateway: WhatsAppService(org_id, repo, gateway).send_text_message(
                to, text, conversation_id=conversation_id
            )
        )
        rprint("[green]Message sent![/green]")
        rprint(f"  Message ID: {result.message_id}")
        rprint(f"  Conversation: {result.conversation_id}")
    finally:
        db.close()


if __name__ == "__main__":
    app()
