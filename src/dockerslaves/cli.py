import click
import logging
import traceback
from pathlib import Path

from .capacity import CapacityGate
from .config import Config, JobConfig
from .runner import BuildRunner, create_driver
from .store import ContextStore
from .utils import setup_logger, parse_module_levels
from .exceptions import (
    DockerSlavesError,
    ConfigurationError,
    DefinitionError,
    DockerRuntimeError,
    BuildAbortedError,
)
from . import __version__


def complete_job_files(ctx, param, incomplete):
    """Auto-complete .yml and .yaml job files in current directory"""
    try:
        cwd = Path.cwd()
        yml_files = list(cwd.glob('*.yml')) + list(cwd.glob('*.yaml'))
        return sorted(f.name for f in yml_files if f.name.startswith(incomplete))
    except OSError as e:
        logging.debug(f"Job file auto-completion failed: {e}")
        return []


def setup_logging(debug: bool, log_levels: str = None, log_file: str = None):
    """Setup logger with debug and module-level configuration"""
    setup_logger(debug=debug, module_levels=parse_module_levels(log_levels), log_file=log_file)


def create_gate(config: Config) -> CapacityGate:
    capacity = config.capacity
    return CapacityGate(
        container_cap=capacity.container_cap,
        default_constraint=capacity.default_constraint,
        auxiliary_cap=capacity.auxiliary_cap,
        base_retry_delay=capacity.base_retry_delay,
        max_retry_delay=capacity.max_retry_delay,
    )


def handle_errors(func):
    """Decorator to handle common exceptions"""
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except click.Abort:
            raise
        except ConfigurationError as e:
            logging.error(f"Configuration error: {e}")
            ctx = click.get_current_context()
            if ctx.obj.get('debug'):
                traceback.print_exc()
            raise click.Abort()
        except DefinitionError as e:
            logging.error(f"Definition error: {e}")
            ctx = click.get_current_context()
            if ctx.obj.get('debug'):
                traceback.print_exc()
            raise click.Abort()
        except DockerRuntimeError as e:
            logging.error(f"Docker error: {e}")
            ctx = click.get_current_context()
            if ctx.obj.get('debug'):
                traceback.print_exc()
            raise click.Abort()
        except BuildAbortedError as e:
            logging.error(f"Build aborted: {e}")
            raise click.Abort()
        except DockerSlavesError as e:
            logging.error(f"An unexpected application error occurred: {e}")
            ctx = click.get_current_context()
            if ctx.obj.get('debug'):
                traceback.print_exc()
            raise click.Abort()
        except FileNotFoundError as e:
            logging.error(f"A required file was not found: {e}")
            ctx = click.get_current_context()
            if ctx.obj.get('debug'):
                traceback.print_exc()
            raise click.Abort()
        except Exception as e:
            logging.error(f"An unexpected error occurred: {e}")
            ctx = click.get_current_context()
            if ctx.obj.get('debug'):
                traceback.print_exc()
            raise click.Abort()
    return wrapper


@handle_errors
def do_run(job_file: str, config_file: str, output: str) -> int:
    """Execute run command, returns the build's exit status"""
    config = Config(config_file)
    job_config = JobConfig(job_file)
    runner = BuildRunner(
        config,
        create_gate(config),
        output=click.get_binary_stream('stdout'),
        artifacts_dir=Path(output) if output else None,
    )
    try:
        result = runner.run(job_config)
    except KeyboardInterrupt:
        logging.info("Build interrupted, containers were cleaned up.")
        raise click.Abort()

    if result.skipped:
        logging.info(f"Job '{result.job_name}' has no image for its label, skipped.")
    elif result.ok:
        logging.info(f"Job '{result.job_name}' succeeded.")
        for artifact in result.artifacts or []:
            logging.info(f"Artifact: {artifact}")
    else:
        logging.error(f"Job '{result.job_name}' failed at '{result.failed_step}' with exit status {result.exit_status}.")
    return result.exit_status


@handle_errors
def do_status(job_name: str, config_file: str):
    """Show the container context persisted by the job's last build"""
    config = Config(config_file)
    store = ContextStore(config.state_dir)
    context = store.load(job_name)
    if context is None:
        logging.info(f"No build context recorded for '{job_name}'.")
        return

    click.echo(f"Job:        {job_name}")
    click.echo(f"Constraint: {context.constraint}")
    click.echo(f"Remoting:   {context.remoting_container or '-'}")

    leftovers = context.created_containers()
    if not leftovers:
        click.echo("No side or build container left behind.")
        return
    click.echo(f"{'ID':<14} {'IMAGE':<40}")
    click.echo("-" * 54)
    for container in leftovers:
        click.echo(f"{container.short_id():<14} {container.image_name:<40}")


@handle_errors
def do_clean(job_name: str, config_file: str):
    """Remove every container recorded for the job and forget its context"""
    config = Config(config_file)
    store = ContextStore(config.state_dir)
    context = store.load(job_name)
    if context is None:
        logging.info(f"No build context recorded for '{job_name}'.")
        return

    driver = create_driver(config)
    containers = context.created_containers()
    if context.remoting_container is not None and context.remoting_container.is_created:
        containers.append(context.remoting_container)

    removed = 0
    try:
        for container in containers:
            if not driver.has_container(container.id):
                logging.debug(f"Container {container} is already gone")
                continue
            status = driver.remove_container(container.id)
            if status != 0:
                logging.warning(f"Failed to remove container {container} (exit {status})")
                continue
            removed += 1
            logging.debug(f"Removed container: {container}")
    finally:
        driver.close()

    store.forget(job_name)
    logging.info(f"Cleaned {removed} container(s) for '{job_name}'.")


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('-l', '--log-levels', help="Comma-separated per-module log levels (e.g., 'cap=DEBUG,drv=INFO')")
@click.option('-f', '--log-file', help='Path to log file')
@click.version_option(version=__version__, prog_name='dockerslaves')
@click.pass_context
def cli(ctx, debug, log_levels, log_file):
    """Docker Slaves - Run job builds in a set of docker containers

    \b
    Examples:
      dockerslaves run job.yml -c host.yml        Run one build of a job
      dockerslaves status my-job -c host.yml      Show containers of the last build
      dockerslaves clean my-job -c host.yml       Remove them for good
    """
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    setup_logging(debug, log_levels, log_file)


@cli.command()
@click.argument('job_file', shell_complete=complete_job_files)
@click.option('-c', '--config', 'config_file', help='Host configuration file (defaults apply when omitted)')
@click.option('-o', '--output', help='Directory receiving the artifacts (default: cwd)')
@click.pass_context
def run(ctx, job_file, config_file, output):
    """Run one build of a job

    \b
    This command will:
      1. Start (or reuse) the job's remoting container once capacity allows
      2. Run the scm steps, then the build steps, each in its own container
      3. Copy the artifacts out and remove every side and build container

    The exit status is the one of the first failing step.
    """
    status = do_run(job_file, config_file, output)
    if status:
        ctx.exit(status)


@cli.command()
@click.argument('job_name')
@click.option('-c', '--config', 'config_file', help='Host configuration file')
@click.pass_context
def status(ctx, job_name, config_file):
    """Show the containers recorded by a job's last build"""
    do_status(job_name, config_file)


@cli.command()
@click.argument('job_name')
@click.option('-c', '--config', 'config_file', help='Host configuration file')
@click.pass_context
def clean(ctx, job_name, config_file):
    """Remove a job's remoting container and forget its last build

    \b
    Examples:
      dockerslaves clean my-job -c host.yml
    """
    do_clean(job_name, config_file)
