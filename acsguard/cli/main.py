# -*- coding: utf-8 -*-
"""
ACS Guard CLI
=============

Run the domain validation engine against a graph document (YAML or JSON).

Commands:
    acsguard validate <file>   - Validate every entity (or the batch)
    acsguard system <file>     - Check system-wide invariants
    acsguard rules             - List registered rules per entity type
    acsguard version           - Show version

Document shape:
    entities:
      - {type: Group, id: 1, name: Admins, child_ids: [2]}
      - {type: Group, id: 2, name: Ops, parent_ids: [1]}
    access_entries:
      - {resource_uri: /system/config, entity_id: 1, http_verb: GET}

Example:
    $ acsguard validate graph.yaml --bulk --operation create
    $ acsguard system graph.yaml --format json
"""

import asyncio
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from acsguard._version import __version__
from acsguard.validation.config import ValidationConfig
from acsguard.validation.gateways import InMemoryPersistenceGateway
from acsguard.validation.graph import EntityGraph, entity_from_dict
from acsguard.validation.models import (
    Entity,
    OperationType,
    UserContext,
    ValidationResult,
)
from acsguard.validation.registry import build_default_registry
from acsguard.validation.setup import ValidationService

app = typer.Typer(
    name="acsguard",
    help="ACS Guard: domain validation for access-control graphs",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    ACS Guard - invariant enforcement for users, groups, roles and resources
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def load_document(path: Path) -> Dict[str, Any]:
    """Read a graph document; ``.json`` as JSON, anything else as YAML."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a mapping")
    return data


def _parse_data(pairs: Optional[List[str]]) -> Dict[str, str]:
    data: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got {pair!r}")
        data[key.strip()] = value.strip()
    return data


def _violation_rows(label: str, result: ValidationResult) -> List[Dict[str, Any]]:
    return [
        {
            "entity": label,
            "kind": v.kind.value,
            "severity": v.severity.value,
            "code": v.code or "",
            "message": v.message,
        }
        for v in result.violations
    ]


def _print_rows(rows: List[Dict[str, Any]], title: str, output_format: str) -> None:
    if output_format == "json":
        typer.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        console.print(f"[green]✓[/green] {title}: no violations")
        return
    table = Table(title=title)
    table.add_column("Entity", style="cyan")
    table.add_column("Kind")
    table.add_column("Severity")
    table.add_column("Code", style="yellow")
    table.add_column("Message")
    for row in rows:
        table.add_row(
            row["entity"], row["kind"], row["severity"], row["code"], row["message"],
        )
    console.print(table)


@app.command()
def validate(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Graph document"),
    operation: str = typer.Option("update", "--operation", "-o", help="create, read, update or delete"),
    bulk: bool = typer.Option(False, "--bulk", help="Validate as one batch with cross-entity checks"),
    strict: bool = typer.Option(True, "--strict/--no-strict", help="Enable optional invariants"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="Hierarchy traversal bound"),
    data: Optional[List[str]] = typer.Option(None, "--data", "-d", help="Operation data KEY=VALUE"),
    user_id: Optional[int] = typer.Option(None, "--user-id", help="Calling user identifier"),
    role: Optional[List[str]] = typer.Option(None, "--role", help="Calling user role (repeatable)"),
    output_format: str = typer.Option("table", "--format", "-f", help="table or json"),
):
    """
    Validate the entities of a graph document.

    Example:
        acsguard validate graph.yaml --bulk -o create -d ApprovalId=42
    """
    try:
        op = OperationType(operation)
        document = load_document(file)
        entities: List[Entity] = [
            entity_from_dict(item) for item in document.get("entities", [])
        ]
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    config = ValidationConfig.from_env()
    config = dataclasses.replace(
        config,
        strict_mode=strict,
        max_validation_depth=max_depth or config.max_validation_depth,
    )
    graph = EntityGraph(entities)
    service = ValidationService(
        config=config,
        persistence_gateway=InMemoryPersistenceGateway.from_dict(document),
    )
    user = UserContext(user_id=user_id, roles=list(role or [])) if user_id is not None else None
    operation_data = _parse_data(data)

    rows: List[Dict[str, Any]] = []
    if bulk:
        results = service.validate_entities_bulk(
            entities, op, graph=graph, user_context=user, operation_data=operation_data,
        )
        for entity in entities:
            rows.extend(_violation_rows(str(entity), results[entity.ref]))
    else:
        for entity in entities:
            result = service.validate_entity(
                entity, op, graph=graph, user_context=user, operation_data=operation_data,
            )
            rows.extend(_violation_rows(str(entity), result))

    _print_rows(rows, f"{len(entities)} entities validated", output_format)
    if rows:
        raise typer.Exit(1)


@app.command()
def system(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Graph document"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Deadline in seconds"),
    output_format: str = typer.Option("table", "--format", "-f", help="table or json"),
):
    """
    Check system-wide invariants (administrator, required roles, protected
    system resources) against the document.
    """
    try:
        document = load_document(file)
        gateway = InMemoryPersistenceGateway.from_dict(document)
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    service = ValidationService(
        config=ValidationConfig.from_env(), persistence_gateway=gateway,
    )
    result = asyncio.run(service.validate_system_invariants(timeout=timeout))
    rows = _violation_rows("system", result)
    _print_rows(rows, "System invariants", output_format)
    if rows:
        raise typer.Exit(1)


@app.command()
def rules(
    entity_type: Optional[str] = typer.Option(None, "--entity-type", "-t", help="Only this entity type"),
    output_format: str = typer.Option("table", "--format", "-f", help="table or json"),
):
    """
    List the default rules registered per entity type.
    """
    registry = build_default_registry(ValidationConfig.from_env())
    if entity_type and entity_type not in registry.entity_types():
        console.print(f"[red]Error:[/red] No rules registered for '{entity_type}'")
        console.print(f"\n[yellow]Entity types:[/yellow] {', '.join(registry.entity_types())}")
        raise typer.Exit(1)

    rows = registry.describe(entity_type)
    if output_format == "json":
        typer.echo(json.dumps(rows, indent=2))
        return

    table = Table(title="Registered rules")
    table.add_column("Type", style="cyan")
    table.add_column("Rule ID", style="bold")
    table.add_column("Family")
    table.add_column("Priority", justify="right")
    table.add_column("Severity")
    table.add_column("Bypass")
    table.add_column("Bulk skip")
    for row in rows:
        table.add_row(
            row["entity_type"],
            row["rule_id"],
            row["family"],
            str(row["priority"]),
            row["severity"],
            "yes" if row["allow_admin_bypass"] else "",
            "yes" if row["skip_in_bulk"] else "",
        )
    console.print(table)


@app.command()
def version():
    """Show ACS Guard version"""
    console.print(f"[bold green]ACS Guard v{__version__}[/bold green]")


def main():
    """Main entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(1)


if __name__ == "__main__":
    main()
