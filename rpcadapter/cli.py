"""Command-line interface for calling remote services and inspecting bindings."""

import functools
import importlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, NamedTuple, Optional, TypeVar, Union

import click
import orjson as json
import yaml

import rpcadapter

from . import log
from .api import API
from .binding import MethodBinding, build_bindings
from .client import Client, ClientConfig
from .exception import ConfigurationError
from .mapping import TypeRegistry

__all__ = [
    'cli',
    'load_object',
    'load_yaml',
]

HelpRecord = tuple[str, str]


class OptionGroup(NamedTuple):
    key: str
    header: Optional[str] = None

    @property
    def title(self) -> str:
        return self.header or f'{self.key.title()} Options'


class GroupedCommand(click.Command):
    """A command whose help text lists each option group under its own heading.

    Groups appear in the order their first option was declared. Options outside any
    group are listed last.
    """

    def format_options(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        sections: dict[str, list[HelpRecord]] = {}
        ungrouped: list[HelpRecord] = []
        for param in self.get_params(ctx):
            record = param.get_help_record(ctx)
            if record is None:
                continue
            group: Optional[OptionGroup] = getattr(param, 'group', None)
            if group is None:
                ungrouped.append(record)
            else:
                sections.setdefault(group.title, []).append(record)
        if ungrouped:
            sections['Other Options'] = ungrouped
        for title, records in sections.items():
            with formatter.section(title):
                formatter.write_dl(records, col_max=30)


class GroupedMultiCommand(GroupedCommand, click.Group):
    def format_options(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        super().format_options(ctx, formatter)
        self.format_commands(ctx, formatter)


@dataclass
class OptionStore:
    """Values of every option parsed so far, shared by a command and its subcommands."""

    options: dict[str, Any] = field(default_factory=dict)


class GroupedOption(click.Option):
    def __init__(self, *args: Any, group: Optional[OptionGroup] = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.group = group

    def process_value(self, ctx: click.Context, value: Any) -> Any:
        # Callbacks may run before the command body creates the store.
        ctx.ensure_object(OptionStore)
        return super().process_value(ctx, value)


FC = TypeVar('FC', Callable[..., Any], click.Command)
ParameterCallback = Callable[[click.Context, click.Parameter, Any], Any]


class OptionGroups:
    """Declare options under the most recently opened group.

    Decorators are applied bottom-up but evaluated top-down, so a ``group(...)``
    decorator opens a group for the ``option(...)`` decorators written below it.
    """

    def __init__(self) -> None:
        self.current: Optional[OptionGroup] = None

    def group(self, key: str, header: Optional[str] = None) -> Callable[[FC], FC]:
        self.current = OptionGroup(key, header)
        return lambda func: func

    def option(self, *args: Any, **kwargs: Any) -> Callable[[FC], FC]:
        return click.option(*args, cls=GroupedOption, group=self.current, **kwargs)


@functools.lru_cache(maxsize=64)
def make_converter(convert: Callable[[Any], Any]) -> ParameterCallback:
    """Wrap a conversion function as a :mod:`click` parameter callback.

    ``None`` (an option that was not given) is returned as is. Any exception the
    conversion raises is reported to the user as a :class:`click.BadParameter`.
    """

    def callback(_ctx: click.Context, _param: click.Parameter, value: Any, /) -> Any:
        if value is None:
            return None
        try:
            return convert(value)
        except Exception as exc:
            raise click.BadParameter(str(exc)) from exc

    return callback


def check_positive(value: float) -> float:
    """Reject durations that are zero or negative.

    Examples:
        >>> check_positive(2.5)
        2.5
        >>> check_positive(-1)
        Traceback (most recent call last):
          ...
        ValueError: -1 is not a positive number of seconds
    """
    if value <= 0:
        raise ValueError(f'{value} is not a positive number of seconds')
    return value


def load_yaml(path: Union[str, Path]) -> Any:
    """Parse a YAML document with the safe loader.

    Examples:
        >>> import tempfile
        >>> with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml') as tmp:
        ...     _ = tmp.write('timeout: 2.5\\nservice_name: PersonService\\n')
        ...     tmp.flush()
        ...     load_yaml(tmp.name)
        {'timeout': 2.5, 'service_name': 'PersonService'}

    Raises:
        ValueError: If the document is malformed. The message includes the position of
            the problem when PyYAML reports one.
    """
    try:
        with Path(path).open() as stream:
            return yaml.safe_load(stream)
    except yaml.YAMLError as exc:
        mark = getattr(exc, 'problem_mark', None)
        where = f' at line {mark.line + 1}, column {mark.column + 1}' if mark else ''
        raise ValueError(f'{path} is not valid YAML{where}') from exc


def load_options(path: Union[str, Path]) -> dict[str, Any]:
    """Read client options from a YAML file containing a single mapping."""
    options = load_yaml(path)
    if options is None:
        return {}
    if not isinstance(options, dict):
        raise ValueError(f'{path} should contain a mapping of options')
    return options


def load_object(path: str) -> Any:
    """Import an object given its location in the form ``MODULE:ATTRIBUTE``.

    Examples:
        >>> load_object('rpcadapter.api:camelize')('find_all')
        'FindAll'
        >>> load_object('rpcadapter.api')
        Traceback (most recent call last):
          ...
        ValueError: 'rpcadapter.api' should have the form MODULE:ATTRIBUTE
    """
    module_name, _, attrs = path.partition(':')
    if not module_name or not attrs:
        raise ValueError(f'{path!r} should have the form MODULE:ATTRIBUTE')
    obj = importlib.import_module(module_name)
    for attr in attrs.split('.'):
        obj = getattr(obj, attr)
    return obj


def load_api(path: str) -> API:
    api = load_object(path)
    if not isinstance(api, API):
        raise ValueError(f'{path!r} is not an API description')
    return api


def client_options(ctx: click.Context) -> dict[str, Any]:
    """Merge the options file with the options given on the command line.

    Options given on the command line take priority.
    """
    options = dict(ctx.obj.options.get('config') or {})
    for name in ('service_name', 'action_base', 'timeout'):
        value = ctx.obj.options.get(name)
        if value is not None:
            options[name] = value
    return options


def render_binding(binding: MethodBinding) -> dict[str, Any]:
    return {
        'name': binding.name,
        'public_name': binding.public_name,
        'qualified_name': binding.qualified_name,
        'action': binding.action,
        'parameters': [
            {
                'direction': param.direction.value,
                'name': param.name,
                'type': param.mapping.type_name,
            }
            for param in binding.parameters
        ],
    }


optgroup = OptionGroups()


def client_group(func: FC) -> FC:
    """Options shared by every command that builds bindings."""
    decorators = [
        optgroup.group('client'),
        optgroup.option(
            '--api',
            metavar='MODULE:ATTRIBUTE',
            required=True,
            callback=make_converter(load_api),
            help='Location of the API description to bind.',
        ),
        optgroup.option(
            '--service-name',
            help=f'Namespace root.  [default: {ClientConfig.service_name}]',
        ),
        optgroup.option(
            '--action-base',
            help='Prefix of action identifiers.  [default: endpoint path]',
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


@click.group(
    context_settings=dict(
        auto_envvar_prefix='RPCADAPTER',
        max_content_width=100,
        show_default=True,
    ),
    cls=GroupedMultiCommand,
)
@optgroup.group('log')
@optgroup.option(
    '--log-level',
    type=click.Choice(log.LEVELS, case_sensitive=False),
    default='info',
    help='Minimum severity of log records displayed.',
)
@optgroup.option(
    '--log-format',
    type=click.Choice(['json', 'pretty'], case_sensitive=False),
    default='json',
    help='Format of records printed to standard output.',
)
@click.option(
    '--config',
    type=click.Path(dir_okay=False, exists=True),
    callback=make_converter(load_options),
    cls=GroupedOption,
    help='YAML file of client options (service_name, action_base, timeout).',
)
@click.version_option(version=rpcadapter.__version__, message='%(version)s')
@click.pass_context
def cli(ctx: click.Context, **options: Any) -> None:
    """Call operations of remote services described by an API description.

    The API description is a Python object (an instance of ``rpcadapter.API``) named by
    its import location, such as ``myproject.services:person_api``.
    """
    ctx.ensure_object(OptionStore)
    ctx.obj.options.update(options)
    log.configure(fmt=ctx.obj.options['log_format'], level=ctx.obj.options['log_level'])


@cli.command(name='call', cls=GroupedCommand)
@client_group
@optgroup.group('call')
@optgroup.option(
    '--timeout',
    type=float,
    callback=make_converter(check_positive),
    help='Seconds to wait for a response.  [default: 5]',
)
@optgroup.option(
    '--arguments',
    callback=make_converter(json.loads),
    default='[]',
    help='Positional arguments (in JSON format).',
)
@click.argument('endpoint')
@click.argument('method')
@click.pass_context
def call_cli(ctx: click.Context, **options: Any) -> None:
    """Issue a remote call and print its result (in JSON format).

    \b
        $ python -m rpcadapter call --api myproject.services:person_api \\
        >   --arguments '[1]' http://localhost:8080/api/person find
    """
    ctx.obj.options.update(options)
    arguments = ctx.obj.options['arguments']
    if not isinstance(arguments, list):
        raise click.BadParameter('should be a JSON array', param_hint="'--arguments'")
    logger = log.get_logger()
    method = ctx.obj.options['method']
    try:
        client = Client(
            ctx.obj.options['api'],
            ctx.obj.options['endpoint'],
            client_options(ctx),
        )
    except ConfigurationError as exc:
        raise click.UsageError(f'{exc} {exc.context}') from exc
    with client:
        try:
            result = client.invoke(method, arguments)
        except Exception as exc:
            logger.error('Remote call failed', method=method, exc_info=exc)
            ctx.exit(1)
    logger.info('Remote call succeeded', method=method)
    click.echo(json.dumps(result, default=str))


@cli.command(name='bindings', cls=GroupedCommand)
@client_group
@click.argument('endpoint', default='')
@click.pass_context
def bindings_cli(ctx: click.Context, **options: Any) -> None:
    """Print the method binding of every operation (one JSON object per line).

    No connection is made. The endpoint, if given, only determines the default action
    identifier prefix.
    """
    ctx.obj.options.update(options)
    api: API = ctx.obj.options['api']
    try:
        config = ClientConfig.from_options(
            client_options(ctx),
            endpoint=ctx.obj.options['endpoint'],
        )
        bindings = build_bindings(
            api,
            config.namespace,
            config.action_base or '',
            TypeRegistry(namespace=config.namespace),
            inflect=api.inflect,
        )
    except ConfigurationError as exc:
        raise click.UsageError(f'{exc} {exc.context}') from exc
    for binding in bindings.values():
        click.echo(json.dumps(render_binding(binding)))
