"""Top-level Click group for the circlewait CLI."""

import click

from circlewait.builds_cmd.cli import builds_cmd, cancel_cmd, enable_cmd, open_cmd, rebuild_cmd
from circlewait.version import VERSION
from circlewait.wait.cli import wait_cmd


@click.group()
@click.option("--token", envvar="CIRCLE_TOKEN", default=None,
              help="CircleCI API token (default: $CIRCLE_TOKEN)")
@click.pass_context
def main(ctx, token):
    """circlewait - wait for CircleCI builds on a git branch."""
    ctx.ensure_object(dict).setdefault("token", token)


@click.command("version")
def version_cmd():
    """Print the current version."""
    click.echo(f"circlewait version {VERSION}")


main.add_command(wait_cmd)
main.add_command(builds_cmd)
main.add_command(open_cmd)
main.add_command(cancel_cmd)
main.add_command(rebuild_cmd)
main.add_command(enable_cmd)
main.add_command(version_cmd)
