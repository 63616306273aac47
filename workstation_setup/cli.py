"""Command line entry point."""

from pathlib import Path
from typing import Optional, Tuple

import click

from workstation_setup import APP_NAME, VERSION
from workstation_setup.config import Config
from workstation_setup.errors import PreflightError, ProvisioningError
from workstation_setup.log import setup_logger
from workstation_setup.orchestrator import Provisioner
from workstation_setup.preflight import Preflight
from workstation_setup.runner import CommandRunner, PrivilegedRunner
from workstation_setup.ui import console, create_header, print_error, print_status_report
from workstation_setup.workspace import (
    TempWorkspace,
    install_signal_handlers,
    restore_signal_handlers,
)


def build_config(**overrides) -> Config:
    """Create the run configuration, ignoring options left unset."""
    return Config(**{key: value for key, value in overrides.items() if value is not None})


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    help="Home directory to provision (defaults to the current user's).",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Log file location.",
)
@click.option(
    "--ruby",
    "ruby_versions",
    multiple=True,
    metavar="VERSION",
    help="Ruby version to install; repeat to replace the pinned set.",
)
@click.option("--default-ruby", metavar="VERSION", help="Global Ruby version.")
@click.option("-v", "--verbose", is_flag=True, help="Show every executed command.")
@click.option("--no-banner", is_flag=True, help="Skip the ASCII art header.")
@click.version_option(VERSION, prog_name=APP_NAME)
@click.pass_context
def main(
    ctx: click.Context,
    home: Optional[Path],
    log_file: Optional[Path],
    ruby_versions: Tuple[str, ...],
    default_ruby: Optional[str],
    verbose: bool,
    no_banner: bool,
) -> None:
    """
    Provision a Debian/Ubuntu workstation: system update, build tools,
    Google Chrome, Docker CE, rbenv with pinned Ruby versions and bash
    customizations.

    Run as a regular user; sudo is used for system-wide changes.
    """
    if ruby_versions and default_ruby is None:
        default_ruby = ruby_versions[-1]

    try:
        config = build_config(
            home=home,
            log_file=log_file,
            verbose=verbose,
            ruby_versions=list(ruby_versions) or None,
            default_ruby=default_ruby,
        )
    except ValueError as e:
        print_error(str(e))
        ctx.exit(1)

    if not no_banner:
        console.print(create_header(APP_NAME))

    logger = setup_logger(config.log_file, config.verbose)
    runner = CommandRunner()
    sudo = PrivilegedRunner(runner)

    try:
        os_release = Preflight(
            runner,
            config.os_release_path,
            supported=config.supported_distros,
            probe_host=config.probe_host,
        ).run()
    except PreflightError as e:
        logger.error(e.message)
        ctx.exit(e.exit_code)

    exit_code = 0
    provisioner = None
    previous_handlers = install_signal_handlers()
    try:
        with TempWorkspace() as workspace:
            provisioner = Provisioner(config, runner, sudo, workspace, os_release=os_release)
            provisioner.run()
    except ProvisioningError as e:
        exit_code = e.exit_code
    except SystemExit as e:
        # Termination signal; the workspace is already removed
        exit_code = e.code if isinstance(e.code, int) else 1
    finally:
        restore_signal_handlers(previous_handlers)

    if provisioner is not None:
        print_status_report(provisioner.status)
    if exit_code:
        logger.error(f"Setup failed. Check the log for details: {config.log_file}")
    ctx.exit(exit_code)


if __name__ == "__main__":
    main()
