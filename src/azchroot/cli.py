import click
import functools
import logging
import traceback

from .config import Config
from .builder import build_steps
from .datacls import EnvironmentInfo, StaticMetadataProvider
from .utils import setup_logger, parse_module_levels
from .exceptions import (
    ChrootBuilderError,
    ConfigurationError,
    ConfigValidationError,
    DefinitionError,
    BuildError,
    InternalInvariantError,
)
from . import __version__


def setup_logging(debug: bool, log_levels: str = None, log_file: str = None):
    """Setup logger with debug and module-level configuration"""
    module_levels = parse_module_levels(log_levels) if log_levels else None
    setup_logger(debug=debug, module_levels=module_levels, log_file=log_file)


def _fail(message: str):
    logging.error(message)
    ctx = click.get_current_context()
    if ctx.obj.get('debug'):
        traceback.print_exc()
    raise click.Abort()


def handle_errors(func):
    """Decorator to handle common exceptions"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ConfigValidationError as e:
            for warning in e.warnings:
                logging.warning(warning)
            _fail(f"Configuration error: {e}")
        except ConfigurationError as e:
            _fail(f"Configuration error: {e}")
        except DefinitionError as e:
            _fail(f"Definition error: {e}")
        except BuildError as e:
            _fail(f"Build error: {e.describe()}")
        except InternalInvariantError as e:
            _fail(f"Internal error, please report it: {e}")
        except ChrootBuilderError as e:
            _fail(f"An unexpected application error occurred: {e}")
        except Exception as e:
            _fail(f"An unexpected error occurred: {e}")
    return wrapper


def host_options(func):
    """Facts about the build host, normally answered by the instance metadata service."""
    options = [
        click.option('--location', envvar='AZCHROOT_LOCATION', default='', help='Location of the build host.'),
        click.option('--subscription-id', envvar='AZCHROOT_SUBSCRIPTION_ID', default='',
                     help='Subscription of the build host.'),
        click.option('--resource-group', envvar='AZCHROOT_RESOURCE_GROUP', default='',
                     help='Resource group of the build host.'),
        click.option('--vm-name', envvar='AZCHROOT_VM_NAME', default='', help='Name of the build host VM.'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _environment(location, subscription_id, resource_group, vm_name) -> EnvironmentInfo:
    return EnvironmentInfo(
        name=vm_name,
        resource_group=resource_group,
        subscription_id=subscription_id,
        location=location,
    )


@click.group()
@click.version_option(__version__, prog_name='azchroot')
@click.option('--debug', is_flag=True, help='Enable debug logging.')
@click.option('--log-levels', help='Per-module levels, e.g. "graph=DEBUG,steps.disk=INFO".')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also write logs to this file.')
@click.pass_context
def cli(ctx, debug, log_levels, log_file):
    """Build Azure images by attaching, mounting and chrooting into a disk."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    setup_logging(debug, log_levels, log_file)


@cli.command()
@click.argument('config_file', type=click.Path(dir_okay=False))
@host_options
@handle_errors
def validate(config_file, location, subscription_id, resource_group, vm_name):
    """Validate CONFIG_FILE and report every problem at once."""
    info = _environment(location, subscription_id, resource_group, vm_name)
    config = Config(config_file, StaticMetadataProvider(info))
    click.echo(f"Configuration is valid (source type: {config.source_type.value}).")


@cli.command()
@click.argument('config_file', type=click.Path(dir_okay=False))
@host_options
@handle_errors
def plan(config_file, location, subscription_id, resource_group, vm_name):
    """Print the steps a build of CONFIG_FILE would run, without running them."""
    info = _environment(location, subscription_id, resource_group, vm_name)
    config = Config(config_file, StaticMetadataProvider(info))
    steps = build_steps(config.model, info)
    click.echo(f"Source type: {config.source_type.value}")
    for index, step in enumerate(steps, start=1):
        click.echo(f"{index:2d}. {step.describe()}")
