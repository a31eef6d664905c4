"""Rule CLI commands: verify a value and list rules."""

import asyncio
from pathlib import Path

import click

from fieldguard.config import ValidatorConfig
from fieldguard.exceptions import FieldguardError
from fieldguard.registry import RuleRegistry
from fieldguard.rules import register_builtin_rules
from fieldguard.validator import Validator


def _parse_targets(pairs: tuple[str, ...]) -> dict[str, str]:
    targets: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"Expected name=value, got '{pair}'", param_hint="--target")
        targets[name] = value
    return targets


@click.command()
@click.argument("value")
@click.option("--rules", "rule_spec", required=True, help='Rule specification, e.g. "required|min:3".')
@click.option("--name", default="value", show_default=True, help="Field name used in messages.")
@click.option("--bail/--no-bail", default=True, help="Stop at the first failing rule.")
@click.option(
    "--target",
    "targets",
    multiple=True,
    help="Value of a referenced field, as name=value. Repeatable.",
)
@click.option("--locale", default=None, help="Message locale.")
@click.option(
    "--messages",
    "messages_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML message dictionary to merge.",
)
def verify(
    value: str,
    rule_spec: str,
    name: str,
    bail: bool,
    targets: tuple[str, ...],
    locale: str | None,
    messages_path: Path | None,
):
    """Validate VALUE against a rule specification."""
    config = ValidatorConfig.from_env()
    if locale:
        config.locale = locale
    if messages_path is not None:
        config.messages_path = messages_path

    registry = register_builtin_rules(RuleRegistry())
    validator = Validator(config=config, registry=registry)

    try:
        result = asyncio.run(
            validator.verify(
                value,
                rule_spec,
                name=name,
                bails=bail,
                values=_parse_targets(targets),
            )
        )
    except FieldguardError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(2)

    if result.valid:
        click.echo(click.style("Valid.", fg="green", bold=True))
        return

    for rule_name, message in result.failed_rules.items():
        click.echo(click.style(f"  ✗ {rule_name}: {message}", fg="red"))
    click.echo(click.style(f"\n{len(result.errors)} rule(s) failed.", fg="red", bold=True))
    raise SystemExit(1)


@click.command()
def rules():
    """List built-in rules and their flags."""
    registry = register_builtin_rules(RuleRegistry())
    for rule_name in registry.names():
        rule = registry.resolve(rule_name)
        flags = [
            label
            for label, enabled in (
                ("target", rule.has_target),
                ("computes-required", rule.computes_required),
                ("initial", rule.initial),
            )
            if enabled
        ]
        params = ",".join(rule.param_names)
        line = f"  {rule_name}"
        if params:
            line += f":{params}"
        if flags:
            line += f"  [{', '.join(flags)}]"
        click.echo(line)
