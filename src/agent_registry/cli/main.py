"""CLI entry point for agent-registry.

Invoked as::

    agent-registry [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m agent_registry.cli.main

Commands
--------
did validate              Diagnose a DID against an expected address
did extract               Print the address embedded in a DID
did encode                Build a DID for an address
agent register            Register the caller directly
agent sign-request        Produce a signed delegated registration request
agent register-delegated  Submit a signed request as a relayer
agent update-endpoint     Replace an agent's service endpoint
agent show                Look up one agent
agent list                List all registered agents
agent events              Replay a JSONL event log
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

console = Console()


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="agent-registry")
def cli() -> None:
    """DID-bound identity records for autonomous agents"""


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from agent_registry import __version__

    console.print(f"[bold]agent-registry[/bold] v{__version__}")


# ------------------------------------------------------------------
# did command group
# ------------------------------------------------------------------


@cli.group(name="did")
def did_group() -> None:
    """Inspect and build DIDs."""


@did_group.command(name="validate")
@click.argument("did")
@click.argument("address")
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit the diagnosis as JSON.")
def validate_command(did: str, address: str, as_json: bool) -> None:
    """Check that DID encodes ADDRESS, reporting the failing stage."""
    from agent_registry.did import get_validation_details

    result = get_validation_details(did, address)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        table = Table(title="DID validation", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("DID", result.did)
        table.add_row("Method", result.method or "-")
        table.add_row("Namespace", ":".join(result.namespace) or "-")
        table.add_row("Payload", result.payload or "-")
        table.add_row("Suffix", result.suffix or "-")
        table.add_row("Expected", result.expected_address or address)
        table.add_row("Recovered", result.recovered_address or "-")
        table.add_row("Stage", result.stage.value)
        console.print(table)
        if result.valid:
            console.print(f"  [green]PASS[/green]  {result.message}")
        else:
            console.print(f"  [red]FAIL[/red]  {result.message}")

    if not result.valid:
        sys.exit(1)


@did_group.command(name="extract")
@click.argument("did")
def extract_command(did: str) -> None:
    """Print the address embedded in DID."""
    from agent_registry.did import extract_address_from_did, get_validation_details
    from agent_registry.addresses import NULL_ADDRESS

    address, ok = extract_address_from_did(did)
    if not ok:
        # Diagnose against the null address purely to surface the failing stage.
        result = get_validation_details(did, NULL_ADDRESS)
        console.print(f"[red]Error:[/red] {result.message}")
        sys.exit(1)
    click.echo(address)


@did_group.command(name="encode")
@click.argument("address")
@click.option("--method", "-m", default="agent", show_default=True, help="DID method segment.")
@click.option(
    "--namespace",
    "-n",
    multiple=True,
    help="Namespace segment placed before the payload (repeatable).",
)
def encode_command(address: str, method: str, namespace: tuple[str, ...]) -> None:
    """Build a DID whose payload encodes ADDRESS."""
    from agent_registry.addresses import InvalidAddressError
    from agent_registry.did import did_for_address

    try:
        click.echo(did_for_address(address, method=method, namespace=namespace))
    except (InvalidAddressError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)


# ------------------------------------------------------------------
# agent command group
# ------------------------------------------------------------------


_registry_file_option = click.option(
    "--registry-file",
    type=click.Path(),
    default=None,
    help="Path to a JSON file acting as a persistent registry store.",
)
_config_option = click.option(
    "--config",
    "config_file",
    type=click.Path(),
    default=None,
    help="Path to a TOML registry configuration file.",
)
_event_log_option = click.option(
    "--event-log",
    "event_log_file",
    type=click.Path(),
    default=None,
    help="Append committed registry events to this JSONL file.",
)


@cli.group(name="agent")
def agent_group() -> None:
    """Register and look up agents."""


@agent_group.command(name="register")
@click.argument("did")
@click.option("--caller", "-a", required=True, help="Address submitting the registration.")
@click.option("--description", "-d", default="", help="Free-form agent description.")
@click.option("--endpoint", "-e", required=True, help="Service endpoint to claim.")
@click.option("--value", type=int, default=None, help="Attached value (defaults to the fee).")
@_registry_file_option
@_config_option
@_event_log_option
def register_command(
    did: str,
    caller: str,
    description: str,
    endpoint: str,
    value: int | None,
    registry_file: str | None,
    config_file: str | None,
    event_log_file: str | None,
) -> None:
    """Register CALLER under DID."""
    from agent_registry.registry import RegistryError

    registry = _load_registry(registry_file, config_file, event_log_file)
    attached = registry.registration_fee if value is None else value

    try:
        record = registry.register_direct(
            did=did,
            description=description,
            service_endpoint=endpoint,
            caller=caller,
            attached_value=attached,
        )
    except RegistryError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    _save_registry(registry, registry_file)
    _print_registered(record)


@agent_group.command(name="sign-request")
@click.option("--private-key", required=True, help="Hex private key of the agent.")
@click.option("--did", required=True, help="DID encoding the agent's address.")
@click.option("--description", "-d", default="", help="Free-form agent description.")
@click.option("--endpoint", "-e", required=True, help="Service endpoint to claim.")
@click.option("--nonce", type=int, default=None, help="Nonce (defaults to the registry's).")
@click.option("--ttl", type=int, default=3600, show_default=True, help="Lifetime in seconds.")
@click.option("--output", type=click.Path(), default=None, help="Write the request JSON here.")
@_registry_file_option
@_config_option
def sign_request_command(
    private_key: str,
    did: str,
    description: str,
    endpoint: str,
    nonce: int | None,
    ttl: int,
    output: str | None,
    registry_file: str | None,
    config_file: str | None,
) -> None:
    """Sign a delegated registration request with the agent's key."""
    from eth_account import Account

    from agent_registry.signing import DelegatedRegistration, TypedDataSigner

    registry = _load_registry(registry_file, config_file)
    try:
        agent_address = Account.from_key(private_key).address
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Error:[/red] invalid private key: {exc}")
        sys.exit(1)

    try:
        request = DelegatedRegistration(
            agent_address=agent_address,
            did=did,
            description=description,
            service_endpoint=endpoint,
            nonce=registry.get_nonce(agent_address) if nonce is None else nonce,
            expiry=int(time.time()) + ttl,
        )
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)
    signature = TypedDataSigner(registry.config.domain).sign(request, private_key)
    payload = {"request": request.to_dict(), "signature": "0x" + signature.hex()}
    payload_json = json.dumps(payload, indent=2)

    if output:
        Path(output).write_text(payload_json, encoding="utf-8")
        console.print(f"[green]Signed request written to[/green] {output}")
    else:
        click.echo(payload_json)


@agent_group.command(name="register-delegated")
@click.argument("request_file", type=click.Path(exists=True))
@click.option("--relayer", "-r", required=True, help="Address relaying the request.")
@click.option("--value", type=int, default=None, help="Attached value (defaults to the fee).")
@_registry_file_option
@_config_option
@_event_log_option
def register_delegated_command(
    request_file: str,
    relayer: str,
    value: int | None,
    registry_file: str | None,
    config_file: str | None,
    event_log_file: str | None,
) -> None:
    """Submit the signed request in REQUEST_FILE on behalf of its agent."""
    from agent_registry.registry import RegistryError
    from agent_registry.signing import DelegatedRegistration

    try:
        data = json.loads(Path(request_file).read_text(encoding="utf-8"))
        request = DelegatedRegistration.from_dict(data["request"])
        signature = str(data["signature"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        console.print(f"[red]Error:[/red] malformed request file: {exc}")
        sys.exit(1)

    registry = _load_registry(registry_file, config_file, event_log_file)
    attached = registry.registration_fee if value is None else value

    try:
        record = registry.register_delegated(
            request=request,
            signature=signature,
            relayer=relayer,
            attached_value=attached,
        )
    except RegistryError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    _save_registry(registry, registry_file)
    _print_registered(record)
    console.print(f"  Relayer:  {relayer}")


@agent_group.command(name="update-endpoint")
@click.argument("address")
@click.argument("endpoint")
@_registry_file_option
@_config_option
@_event_log_option
def update_endpoint_command(
    address: str,
    endpoint: str,
    registry_file: str | None,
    config_file: str | None,
    event_log_file: str | None,
) -> None:
    """Set the service endpoint of ADDRESS to ENDPOINT."""
    from agent_registry.registry import RegistryError

    registry = _load_registry(registry_file, config_file, event_log_file)
    try:
        record = registry.update_service_endpoint(address, endpoint)
    except RegistryError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    _save_registry(registry, registry_file)
    console.print(
        f"[green]Updated[/green] agent [bold]{record.agent_id}[/bold] endpoint to {endpoint}"
    )


@agent_group.command(name="show")
@click.option("--address", "-a", default=None, help="Look up by owner address.")
@click.option("--id", "agent_id", type=int, default=None, help="Look up by agent id.")
@click.option("--endpoint", "-e", default=None, help="Look up by service endpoint.")
@_registry_file_option
@_config_option
def show_command(
    address: str | None,
    agent_id: int | None,
    endpoint: str | None,
    registry_file: str | None,
    config_file: str | None,
) -> None:
    """Show one agent, looked up by address, id or endpoint."""
    from agent_registry.registry import AgentNotFoundError

    if sum(x is not None for x in (address, agent_id, endpoint)) != 1:
        console.print("[red]Error:[/red] give exactly one of --address, --id, --endpoint")
        sys.exit(2)

    registry = _load_registry(registry_file, config_file)
    try:
        if address is not None:
            record = registry.get_agent_by_address(address)
        elif agent_id is not None:
            record = registry.get_agent_by_id(agent_id)
        else:
            record = registry.get_agent_by_service_endpoint(endpoint)  # type: ignore[arg-type]
    except AgentNotFoundError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    console.print(f"  ID:          [bold]{record.agent_id}[/bold]")
    console.print(f"  Address:     {record.owner_address}")
    console.print(f"  DID:         {record.did}")
    console.print(f"  Description: {record.description or '(none)'}")
    console.print(f"  Endpoint:    {record.service_endpoint}")
    console.print(f"  Registered:  {record.registered_at.isoformat()}")
    console.print(f"  Nonce:       {registry.get_nonce(record.owner_address)}")


@agent_group.command(name="list")
@_registry_file_option
@_config_option
def list_command(registry_file: str | None, config_file: str | None) -> None:
    """List all registered agents."""
    registry = _load_registry(registry_file, config_file)
    records = registry.list_agents()

    if not records:
        console.print("[yellow]No agents registered.[/yellow]")
        return

    table = Table(title="Registered Agents", show_header=True)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Address")
    table.add_column("DID")
    table.add_column("Endpoint")
    table.add_column("Description")

    for record in records:
        table.add_row(
            str(record.agent_id),
            record.owner_address,
            record.did,
            record.service_endpoint,
            record.description or "(none)",
        )

    console.print(table)
    console.print(f"\nTotal: {len(records)} agent(s)")


@agent_group.command(name="events")
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--id", "agent_id", type=int, default=None, help="Only events about this agent.")
@click.option("--tail", "-n", type=int, default=None, help="Show only the last N events.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit events as JSON lines.")
def events_command(log_file: str, agent_id: int | None, tail: int | None, as_json: bool) -> None:
    """Replay the registry events recorded in LOG_FILE."""
    from agent_registry.registry import AgentRegistered, EventLog

    events = EventLog(Path(log_file)).replay(agent_id=agent_id, tail=tail)

    if as_json:
        for event in events:
            click.echo(json.dumps({"event_type": event.event_type, **event.to_dict()}))
        return

    if not events:
        console.print("[yellow]No events recorded.[/yellow]")
        return

    table = Table(title="Registry Events", show_header=True)
    table.add_column("Event", style="cyan")
    table.add_column("Agent", justify="right")
    table.add_column("Detail")
    for event in events:
        detail = event.did if isinstance(event, AgentRegistered) else event.new_endpoint
        table.add_row(event.event_type, str(event.agent_id), detail)
    console.print(table)


# ------------------------------------------------------------------
# Helpers: file-backed persistence for CLI use
# ------------------------------------------------------------------


def _print_registered(record) -> None:  # type: ignore[no-untyped-def]
    console.print(f"[green]Registered[/green] agent [bold]{record.agent_id}[/bold]")
    console.print(f"  Address:  {record.owner_address}")
    console.print(f"  DID:      {record.did}")
    console.print(f"  Endpoint: {record.service_endpoint}")


def _load_registry(  # type: ignore[return]
    registry_file: str | None, config_file: str | None, event_log_file: str | None = None
):
    """Return an AgentRegistry, optionally restored from a JSON snapshot file."""
    from agent_registry.config import ConfigError, load_config
    from agent_registry.registry import AgentRegistry, EventLog, RegistryStateError

    try:
        config = load_config(config_file)
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    event_log = EventLog(Path(event_log_file)) if event_log_file else None

    if registry_file and Path(registry_file).exists():
        try:
            snapshot = json.loads(Path(registry_file).read_text(encoding="utf-8"))
            return AgentRegistry.restore(snapshot, config=config, event_log=event_log)
        except (json.JSONDecodeError, RegistryStateError) as exc:
            console.print(f"[red]Error:[/red] Could not load registry file: {exc}")
            sys.exit(1)
    return AgentRegistry(config=config, event_log=event_log)


def _save_registry(registry, registry_file: str | None) -> None:  # type: ignore[no-untyped-def]
    """Persist registry contents to a JSON file."""
    if not registry_file:
        return
    Path(registry_file).write_text(json.dumps(registry.snapshot(), indent=2), encoding="utf-8")


if __name__ == "__main__":
    cli()
