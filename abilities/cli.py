"""CLI interface for the abilities engine."""

from __future__ import annotations

import asyncio
import os
import sys
from typing import TYPE_CHECKING, Any

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

if TYPE_CHECKING:
    from abilities.definitions.models import AbilityDefinition

console = Console()

EXAMPLE_ABILITY = """\
name: hello
description: Greet someone and show the working directory

inputs:
  name:
    type: string
    required: true

steps:
  - id: greet
    type: script
    run: echo "Hello {{inputs.name}}"

  - id: where
    type: script
    needs: [greet]
    run: pwd
"""


class ConsoleApproval:
    """Approval capability that asks on the terminal."""

    async def request(self, prompt: str, options: list[str] | None = None) -> bool:
        console.print(Panel(prompt, title="Approval required", border_style="yellow"))
        return await asyncio.to_thread(Confirm.ask, "Approve?", default=False)


def _parse_inputs(pairs: tuple[str, ...], ability: "AbilityDefinition | None" = None) -> dict[str, Any]:
    """Turn ``key=value`` pairs into input values.

    Values of inputs declared as ``string`` are kept verbatim; everything else
    is read as YAML so numbers, booleans, lists and mappings can be given.
    """
    from abilities.definitions.models import InputType

    declared = ability.inputs if ability is not None else {}
    inputs: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected key=value, got '{pair}'", param_hint="--input")
        key, raw = pair.split("=", 1)
        key = key.strip()

        definition = declared.get(key)
        if definition is not None and definition.type == InputType.STRING:
            inputs[key] = raw
            continue

        try:
            value = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            value = raw
        inputs[key] = raw if value is None else value
    return inputs


@click.group()
@click.version_option(version="0.1.0", prog_name="abilities")
def cli():
    """Abilities - enforced, step-based workflows for agents."""
    pass


@cli.command("list")
@click.option("--config", "-c", default="abilities.yaml", help="Config file path")
def list_abilities(config: str):
    """List loaded abilities."""
    from rich.table import Table

    from abilities.config import load_config
    from abilities.factory import create_loader
    from abilities.utils import setup_logging

    cfg = load_config(config)
    setup_logging(cfg.logging.level, cfg.logging.format)

    loader = create_loader(cfg)
    loader.load()
    items = loader.list_items()

    if not items:
        console.print("[yellow]No abilities found.[/]")
        return

    table = Table(title="Abilities")
    table.add_column("Name")
    table.add_column("Source")
    table.add_column("Inputs", justify="right")
    table.add_column("Steps", justify="right")
    table.add_column("Description")

    for item in items:
        table.add_row(item.name, item.source.value, str(item.input_count), str(item.step_count), item.description)

    console.print(table)

    for name in loader.failures:
        console.print(f"[red]✗ {name}[/] failed to load (run 'abilities validate {name}')")


@cli.command()
@click.argument("name")
@click.option("--config", "-c", default="abilities.yaml", help="Config file path")
def validate(name: str, config: str):
    """Validate an ability definition."""
    from abilities.config import load_config
    from abilities.factory import create_loader
    from abilities.utils import setup_logging

    cfg = load_config(config)
    setup_logging(cfg.logging.level, cfg.logging.format)

    loader = create_loader(cfg)
    loader.load()

    if loader.get(name) is not None:
        console.print(f"[green]✓ Ability '{name}' is valid[/]")
        return

    issues = loader.failures.get(name)
    if issues is None:
        console.print(f"[red]Ability '{name}' not found[/]")
        sys.exit(1)

    console.print(f"[red]Ability '{name}' has errors:[/]")
    for issue in issues:
        console.print(f"  [{issue.code}] {issue}")
    sys.exit(1)


@cli.command()
@click.argument("name")
@click.option("--input", "-i", "input_pairs", multiple=True, help="Input as key=value (repeatable)")
@click.option("--config", "-c", default="abilities.yaml", help="Config file path")
@click.option("--yes", "-y", is_flag=True, help="Approve every approval step")
def run(name: str, input_pairs: tuple[str, ...], config: str, yes: bool):
    """Run an ability to completion."""
    from abilities.config import load_config
    from abilities.core.execution import ExecutionStatus
    from abilities.core.prompts import format_execution_result, format_plan
    from abilities.factory import create_plugin
    from abilities.utils import setup_logging

    cfg = load_config(config)
    setup_logging(cfg.logging.level, cfg.logging.format)

    class AutoApproval:
        async def request(self, prompt: str, options: list[str] | None = None) -> bool:
            console.print(f"[dim]Auto-approved:[/] {prompt}")
            return True

    async def main() -> ExecutionStatus | None:
        plugin = create_plugin(
            cfg,
            cwd=os.getcwd(),
            approval=AutoApproval() if yes else ConsoleApproval(),
        )
        await plugin.initialize()
        try:
            loaded = plugin.loader.get(name)
            if loaded is None:
                console.print(f"[red]Ability '{name}' not found[/]")
                return None

            inputs = _parse_inputs(input_pairs, loaded.ability)
            console.print(Panel(format_plan(loaded.ability, inputs), title="Plan"))
            execution = await plugin.manager.start(loaded.ability, inputs, plugin.build_context())
            color = "green" if execution.status == ExecutionStatus.COMPLETED else "red"
            console.print(Panel(format_execution_result(execution), border_style=color))
            return execution.status
        finally:
            await plugin.cleanup()

    status = asyncio.run(main())
    if status != ExecutionStatus.COMPLETED:
        sys.exit(1)


@cli.command()
@click.option("--directory", "-d", default=".abilities", help="Ability directory to create")
def init(directory: str):
    """Generate abilities.yaml and an example ability."""
    from abilities.config import generate_default_config

    config_path = "abilities.yaml"

    if os.path.exists(config_path):
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            console.print("[yellow]Cancelled.[/]")
            return

    generate_default_config(config_path)
    console.print(f"[green]Created {config_path}[/]")

    example_path = os.path.join(directory, "hello.yaml")
    if not os.path.exists(example_path):
        os.makedirs(directory, exist_ok=True)
        with open(example_path, "w") as f:
            f.write(EXAMPLE_ABILITY)
        console.print(f"[green]Created {example_path}[/]")

    console.print("Try: abilities run hello -i name=World")


if __name__ == "__main__":
    cli()
