#!/usr/bin/env python3
"""
Main runner script for the ledger scenario harness.
"""
import click
import sys
from pathlib import Path

# Add parent directory to path so we can import our modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from behave.__main__ import main as behave_main

from ledger.identity_store import IdentityStore
from utils.config_loader import config_loader
from utils.custom_exceptions import LedgerHarnessError
from utils.logger import logger, set_log_level


@click.group()
@click.option('--config-dir', envvar='LEDGER_CONFIG_DIR', help='Directory holding config.ini and the accounts file')
@click.option('--log-level', default='INFO', help='Log level')
@click.pass_context
def cli(ctx, config_dir, log_level):
    """Ledger BDD harness CLI."""
    ctx.ensure_object(dict)
    if config_dir:
        # the behave hooks read the shared loader, so point it at the requested directory
        config_loader.config_dir = Path(config_dir)
        config_loader.reload_config()
    ctx.obj['LOADER'] = config_loader
    ctx.obj['LOG_LEVEL'] = set_log_level(log_level)

    logger.info(f"Starting ledger harness CLI - Log Level: {log_level}")


@cli.command()
@click.option('--tags', '-t', multiple=True, help='Behave tag expression (repeatable)')
@click.option('--format', 'output_format', default='pretty', help='Behave formatter')
@click.option('--junit/--no-junit', default=False, help='Write JUnit XML reports')
@click.option('--junit-directory', default='output/junit', help='JUnit report directory')
@click.option('--dry-run', is_flag=True, help='Match steps without running them')
@click.argument('paths', nargs=-1)
@click.pass_context
def run(ctx, tags, output_format, junit, junit_directory, dry_run, paths):
    """Run the behave scenarios under features/ (or the given PATHS)."""
    args = [f"--format={output_format}"]
    for tag in tags:
        args.append(f"--tags={tag}")
    if junit:
        Path(junit_directory).mkdir(parents=True, exist_ok=True)
        args.extend(["--junit", f"--junit-directory={junit_directory}"])
    if dry_run:
        args.append("--dry-run")
    args.extend(paths or [str(project_root / "features")])

    logger.info(f"Running behave {' '.join(args)}")
    exit_code = behave_main(args)
    if exit_code:
        logger.error(f"Scenario run failed with exit code {exit_code}")
    sys.exit(exit_code)


@cli.command()
@click.option('--accounts-file', help='Accounts file (defaults to the [LEDGER] setting)')
@click.pass_context
def accounts(ctx, accounts_file):
    """List configured participants; keys are masked."""
    try:
        store = IdentityStore.from_config(ctx.obj['LOADER'], accounts_file)

        click.echo(f"\n{'='*50}")
        click.echo("CONFIGURED PARTICIPANTS")
        click.echo(f"{'='*50}")
        for index, participant in enumerate(store.participants()):
            public_key = participant.public_key.to_string()
            click.echo(f"{index:>2}  {participant.name:<12} {str(participant.account_id):<12} "
                       f"{public_key[:8]}...{public_key[-4:]}")
        click.echo(f"{'='*50}")

    except LedgerHarnessError as e:
        logger.error(f"Listing accounts failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command('validate-config')
@click.option('--section', default='LEDGER', help='config.ini section holding the ledger settings')
@click.pass_context
def validate_config(ctx, section):
    """Check config.ini and the accounts file without running anything."""
    loader = ctx.obj['LOADER']
    try:
        sections = loader.list_available_sections()
        config = loader.get_ledger_config(section)
        store = IdentityStore.from_config(loader, config.accounts_file)
        participants = store.participants()
        operator = store.resolve(config.operator)

        click.echo(f"\n{'='*50}")
        click.echo("CONFIGURATION CHECK")
        click.echo(f"{'='*50}")
        click.echo(f"Config directory: {loader.config_dir}")
        click.echo(f"Sections: {', '.join(sections) or '(none)'}")
        if section not in sections:
            click.echo(f"No [{section}] section, defaults in use")
        for key, value in config.to_dict().items():
            click.echo(f"  {key}: {value}")
        click.echo(f"Participants: {len(participants)}")
        click.echo(f"Operator: {operator.name} ({operator.account_id})")
        click.echo("Status: ✓ Valid")
        click.echo(f"{'='*50}")

    except LedgerHarnessError as e:
        logger.error(f"Configuration check failed: {e}")
        click.echo("Status: ✗ Invalid", err=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    cli()
