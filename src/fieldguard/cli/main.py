"""fieldguard CLI entry point."""

import click


@click.group()
def cli():
    """fieldguard: declarative field validation CLI."""
    pass


# Register subcommands
from fieldguard.cli.rules_cmd import rules, verify  # noqa: E402

cli.add_command(rules)
cli.add_command(verify)
