"""CLI for KPay payments.

Provides commands for configuration checks, reconciliation and sandbox payments.
"""
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import get_settings
from .core.exceptions import KPayError
from .monitoring.logging import setup_logging
from .services import build_services

app = typer.Typer(
    name="kpay",
    help="KPay payments - payment references for the Kyami Pay gateway",
    add_completion=False,
)

console = Console()


@app.command("check-config")
def check_config() -> None:
    """Validate gateway credentials and show the active configuration."""
    console.print("[bold]Checking KPay configuration...[/bold]\n")
    settings = get_settings()

    missing = settings.missing_credentials()
    if missing:
        for name in missing:
            console.print(f"[red]✗[/red] KPAY_{name.upper()} not configured")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Configuration validated\n")

    table = Table(title="KPay Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    config_items = [
        ("Sandbox Mode", "Yes" if settings.sandbox_mode else "No"),
        ("Base URL", settings.api_base_url),
        ("Entity", settings.entity),
        ("Currency", settings.currency),
        ("Reference Expiry", f"{settings.reference_expiry_hours} hours"),
        ("Timeout", f"{settings.timeout:g}s"),
        ("Webhook", settings.webhook_path if settings.webhook_enabled else "disabled"),
        ("Webhook Signature", "required" if settings.webhook_secret else "not verified"),
    ]

    for name, value in config_items:
        table.add_row(name, value)

    console.print(table)
    console.print("\n[green]✓[/green] KPay API connection is properly configured!")


@app.command()
def reconcile(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Emit structured logs while reconciling",
    ),
) -> None:
    """Run one reconciliation pass against the gateway."""
    settings = get_settings()
    if verbose:
        setup_logging(settings)

    try:
        services = build_services(settings)
    except KPayError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    try:
        report = services.reconciliation_engine.run()
    except KPayError as e:
        console.print(f"[red]Reconciliation failed:[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        services.close()

    table = Table(title="Reconciliation")
    table.add_column("Result", style="cyan")
    table.add_column("Count", style="green")
    table.add_row("Confirmed", str(len(report.confirmed)))
    table.add_row("Already paid", str(len(report.already_paid)))
    table.add_row("Unknown locally", str(len(report.unknown)))
    table.add_row("Conflicts", str(len(report.conflicts)))
    table.add_row("Expired", str(len(report.expired)))
    table.add_row("Restored", str(report.restored))
    console.print(table)

    if report.has_discrepancies:
        for reference in report.unknown:
            console.print(f"[yellow]![/yellow] Paid at gateway, unknown locally: {reference}")
        for reference in report.conflicts:
            console.print(f"[yellow]![/yellow] Paid at gateway, terminal locally: {reference}")
        raise typer.Exit(code=2)


@app.command()
def simulate(
    reference: str = typer.Argument(..., help="15-digit payment reference"),
    amount: str = typer.Argument(..., help="Amount to pay"),
) -> None:
    """Emulate a payment in the sandbox."""
    settings = get_settings()

    try:
        services = build_services(settings)
        try:
            accepted = services.gateway.simulate_payment(reference, amount)
        finally:
            services.close()
    except KPayError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if not accepted:
        console.print("[yellow]Simulation is only available in sandbox mode.[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Payment simulated for {reference}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(
        "kpay_payments.api.main:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
) -> None:
    """KPay payments - payment references for the Kyami Pay gateway."""
    if version:
        from kpay_payments import __version__
        console.print(f"kpay-payments v{__version__}")
        raise typer.Exit()


if __name__ == "__main__":
    app()
