"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import SAMPLE_DATA_FILE, InMemoryBookingStore
from ..adapters.supabase_store import SupabaseBookingStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import InvalidRequestError, SlotkeeperError
from ..services.booking_service import BookingService, BookingStore, ServiceResponse

app = typer.Typer(
    name="slotkeeper",
    help="Check free appointment slots and book them",
    add_completion=False
)

console = Console()

logger = logging.getLogger(__name__)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")]


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path], verbose: bool) -> AppConfig:
    """
    Load the config file; fall back to defaults when no file exists at the
    default location. An explicitly given path must exist.
    """
    config_path = config_file or get_default_config_path()
    if config_file is None and not config_path.exists():
        config = AppConfig()
    else:
        config = AppConfig.load_from_yaml(config_path)

    _setup_logging("DEBUG" if verbose else config.log_level)
    logger.debug("Loaded configuration from %s", config_path)
    return config


def create_store(config: AppConfig) -> BookingStore:
    """Build the storage adapter selected in the configuration."""
    storage = config.storage
    if storage.backend == "supabase":
        return SupabaseBookingStore(
            url=storage.supabase_url,
            api_key=storage.supabase_key,
            default_policy=config.default_policy(),
            timeout=storage.timeout_seconds,
        )

    data_file = storage.data_file or SAMPLE_DATA_FILE
    return InMemoryBookingStore.from_json_file(data_file, config.default_policy())


def _persist_offline_changes(config: AppConfig, store: BookingStore) -> None:
    """Write changes back when an offline data file is configured."""
    if isinstance(store, InMemoryBookingStore) and config.storage.data_file:
        store.dump_json_file(config.storage.data_file)


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


def _print_response_error(response: ServiceResponse) -> None:
    console.print(f"[bold red]✗ {response.body.get('error', 'Request failed')}[/bold red]")
    if response.body.get("retry"):
        console.print("[yellow]Run 'slotkeeper slots' again to see the current free times.[/yellow]")


@app.command()
def slots(
    provider: Annotated[str, typer.Argument(help="Provider (barber) id")],
    date: Annotated[Optional[str], typer.Option("--date", help="Date (YYYY-MM-DD). Defaults to today.")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Service duration in minutes")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List the free start times of a provider on one day.

    Examples:

        slotkeeper slots barber-1 --date 2024-11-27 --duration 60
    """
    try:
        config = _load_config(config_file, verbose)
        store = create_store(config)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))

    service = BookingService(store, timezone=config.timezone)
    day = date or pendulum.now(config.timezone).format("YYYY-MM-DD")
    minutes = duration if duration is not None else config.defaults.duration_minutes

    response = service.get_available_slots(
        {"providerId": provider, "date": day, "durationMinutes": minutes}
    )

    if not response.ok:
        _print_response_error(response)
        raise typer.Exit(1)

    free = response.body["slots"]
    console.print()
    if not free:
        console.print(f"[yellow]⚠ No free slots for {provider} on {day}.[/yellow]")
    else:
        console.print(f"[bold green]✓ {len(free)} free slot(s) for {provider} on {day} ({minutes} min):[/bold green]\n")
        console.print("  " + "  ".join(free))
    console.print()


@app.command()
def book(
    provider: Annotated[str, typer.Argument(help="Provider (barber) id")],
    start: Annotated[str, typer.Option("--start", help="Start time, ISO 8601 (e.g. 2024-11-27T10:30)")],
    client_name: Annotated[str, typer.Option("--client-name", help="Client name")],
    client_phone: Annotated[str, typer.Option("--client-phone", help="Client phone (identifies the client)")],
    service: Annotated[List[str], typer.Option("--service", "-s", help="Service name (repeatable)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Total duration in minutes")] = None,
    client_email: Annotated[Optional[str], typer.Option("--client-email", help="Client e-mail")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Book an appointment after re-checking availability.
    """
    try:
        config = _load_config(config_file, verbose)
        store = create_store(config)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))

    booking_service = BookingService(store, timezone=config.timezone)
    response = booking_service.create_booking(
        {
            "providerId": provider,
            "startTime": start,
            "durationMinutes": duration if duration is not None else config.defaults.duration_minutes,
            "services": service,
            "client": {"name": client_name, "phone": client_phone, "email": client_email},
        }
    )

    if not response.ok:
        _print_response_error(response)
        raise typer.Exit(1)

    _persist_offline_changes(config, store)

    appointment = response.body["appointment"]
    console.print(Panel.fit(
        f"[bold green]✓ {response.body['message']}[/bold green]\n\n"
        f"[bold]Booking:[/bold] {response.body['bookingId']}\n"
        f"[bold]Provider:[/bold] {appointment['provider_id']}\n"
        f"[bold]Start:[/bold] {appointment['start']}\n"
        f"[bold]Duration:[/bold] {appointment['duration_minutes']} min\n"
        f"[bold]Services:[/bold] {', '.join(item['name'] for item in appointment['services'])}",
        title="Booking"
    ))


@app.command()
def hours(
    provider: Annotated[str, typer.Argument(help="Provider (barber) id")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Show the effective working hours of a provider.
    """
    try:
        config = _load_config(config_file, verbose)
        store = create_store(config)
        policy = store.get_schedule_policy(provider)
    except (FileNotFoundError, ValueError, SlotkeeperError) as e:
        _fail(str(e))

    table = Table(
        title=f"Working hours of {provider}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Open days", style="bold yellow")
    table.add_column("Hours")
    table.add_column("Step", style="dim")
    table.add_column("Timezone", style="dim")
    table.add_row(
        ", ".join(policy.day_labels()) or "closed",
        f"{policy.daily_start.strftime('%H:%M')} - {policy.daily_end.strftime('%H:%M')}",
        f"{policy.slot_step_minutes} min",
        policy.timezone,
    )

    console.print()
    console.print(table)
    console.print()


@app.command()
def set_hours(
    target: Annotated[str, typer.Argument(help="Provider or shop id")],
    open_days: Annotated[str, typer.Option("--open-days", help="Comma separated days, e.g. mon,tue,wed. Empty closes.")],
    start: Annotated[str, typer.Option("--start", help="Opening time HH:MM")],
    end: Annotated[str, typer.Option("--end", help="Closing time HH:MM")],
    step: Annotated[int, typer.Option("--step", help="Slot granularity in minutes")] = 30,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Update the working hours of a provider or shop.
    """
    try:
        config = _load_config(config_file, verbose)
        store = create_store(config)
        service = BookingService(store, timezone=config.timezone)
        days = [day for day in (part.strip() for part in open_days.split(",")) if day]
        policy = service.update_working_hours(
            target,
            open_days=days,
            start_time=start,
            end_time=end,
            slot_step_minutes=step,
        )
        _persist_offline_changes(config, store)
    except InvalidRequestError as e:
        _fail(f"Invalid working hours: {e}")
    except (FileNotFoundError, ValueError, SlotkeeperError) as e:
        _fail(str(e))

    console.print(
        f"\n[green]✓ Working hours of {target} updated:[/green] "
        f"{', '.join(policy.day_labels()) or 'closed'} "
        f"{policy.daily_start.strftime('%H:%M')}-{policy.daily_end.strftime('%H:%M')} "
        f"every {policy.slot_step_minutes} min\n"
    )


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotkeeper[/bold cyan] version [bold]{__version__}[/bold]\n")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
