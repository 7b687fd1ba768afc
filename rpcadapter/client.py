"""Clients: the surface calling code sees.

A :class:`Client` is built from an :class:`~rpcadapter.api.API` and an endpoint
address. Construction binds every operation once and registers the bindings with a
driver; afterwards, each operation is callable like a local function:

    >>> client = Client(person_api, 'http://example.com/api/person')  # doctest: +SKIP
    >>> client.call.find_all()  # doctest: +SKIP
    [Person(name='Ada', age=36)]
    >>> client.invoke('find', [1])  # doctest: +SKIP
    Person(name='Ada', age=36)
"""

import inspect
import types
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, fields
from typing import Any, Optional
from urllib.parse import urlsplit

from . import remote
from .api import API
from .binding import MethodBinding, build_bindings
from .exception import ConfigurationError, UnboundOperationError
from .mapping import TypeLookup, TypeRegistry

__all__ = ['CallFactory', 'Client', 'ClientConfig']

Call = Callable[..., Any]
Invoke = Callable[[str, Sequence[Any]], Any]


@dataclass(frozen=True)
class ClientConfig:
    """Options recognized by :class:`Client`.

    Parameters:
        service_name: The root of the namespace that qualifies every method name.
        action_base: The prefix of every action identifier. A trailing slash is removed.
            Defaults to the path of the endpoint URL.
        timeout: Maximum duration (in seconds) the default driver waits for a response.
    """

    service_name: str = 'RemoteService'
    action_base: Optional[str] = None
    timeout: float = 5

    def __post_init__(self, /) -> None:
        if not isinstance(self.service_name, str) or not self.service_name:
            raise ConfigurationError(
                'service name must be a nonempty string',
                service_name=self.service_name,
            )
        if self.action_base is not None:
            if not isinstance(self.action_base, str):
                raise ConfigurationError(
                    'action base must be a string',
                    action_base=self.action_base,
                )
            object.__setattr__(self, 'action_base', self.action_base.rstrip('/'))
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
            raise ConfigurationError('timeout must be a number', timeout=self.timeout)
        if self.timeout <= 0:
            raise ConfigurationError('timeout must be positive', timeout=self.timeout)

    @property
    def namespace(self, /) -> str:
        """The prefix of every qualified method name.

        Example:
            >>> ClientConfig(service_name='PersonService').namespace
            'urn:PersonService:'
        """
        return f'urn:{self.service_name}:'

    @classmethod
    def from_options(
        cls,
        options: Optional[Mapping[str, Any]] = None,
        /,
        *,
        endpoint: str = '',
    ) -> 'ClientConfig':
        """Validate an options mapping.

        Parameters:
            options: Option names and values. Options set to ``None`` take their default.
            endpoint: The endpoint address. Its path is the default action base.

        Raises:
            ConfigurationError: If an option is unknown or invalid.

        Examples:
            >>> ClientConfig.from_options({}, endpoint='http://example.com/api/').action_base
            '/api'
            >>> ClientConfig.from_options({'colour': 'blue'})
            Traceback (most recent call last):
              ...
            rpcadapter.exception.ConfigurationError: unknown option
        """
        options = {
            name: value for name, value in (options or {}).items() if value is not None
        }
        known = {attr.name for attr in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError('unknown option', options=unknown)
        options.setdefault('action_base', urlsplit(endpoint).path)
        return cls(**options)


class CallFactory:
    """One callable per bound operation, generated once from the client's bindings.

    Operations are available either as attributes or as items, which is useful for
    names that are not valid Python identifiers:

        >>> client.call.find_all()  # doctest: +SKIP
        >>> client.call['find-all']()  # doctest: +SKIP

    Raises:
        UnboundOperationError: If no operation of that name was bound.
    """

    def __init__(self, invoke: Invoke, bindings: Mapping[str, MethodBinding]) -> None:
        self._calls: dict[str, Call] = {
            name: _make_call(invoke, binding) for name, binding in bindings.items()
        }

    def __getitem__(self, name: str) -> Call:
        try:
            return self._calls[name]
        except KeyError as exc:
            raise UnboundOperationError('no such operation', name=name) from exc

    def __getattr__(self, name: str) -> Call:
        # Private names are never operations; `_calls` may not exist yet.
        if name.startswith('_'):
            raise AttributeError(name)
        return self[name]

    def __contains__(self, name: object) -> bool:
        return name in self._calls

    def __iter__(self) -> Iterator[str]:
        return iter(self._calls)

    def __len__(self) -> int:
        return len(self._calls)

    def __dir__(self) -> list[str]:
        return [*super().__dir__(), *(name for name in self._calls if name.isidentifier())]


def _make_call(invoke: Invoke, binding: MethodBinding) -> Call:
    def call(*args: Any) -> Any:
        return invoke(binding.name, args)

    call.__name__ = call.__qualname__ = binding.name
    call.__doc__ = f'Remote call to {binding.qualified_name} (action {binding.action}).'
    names = [param.name for param in binding.inputs]
    if all(name.isidentifier() for name in names):
        retval = binding.retval
        call.__signature__ = inspect.Signature(  # type: ignore[attr-defined]
            [
                inspect.Parameter(
                    param.name,
                    inspect.Parameter.POSITIONAL_ONLY,
                    annotation=param.mapping.python_type,
                )
                for param in binding.inputs
            ],
            return_annotation=retval.mapping.python_type if retval else None,
        )
    return call


class Client:
    """A client of a remote service.

    Parameters:
        api: The operations the service exposes.
        endpoint: The address of the service.
        options: Options validated by :meth:`ClientConfig.from_options`.
        driver: The transport driver. Defaults to the driver :func:`remote.connect`
            picks for the endpoint.
        lookup: Resolves parameter and return types. Defaults to a
            :class:`~rpcadapter.mapping.TypeRegistry`.

    Attributes:
        bindings: A read-only mapping from internal operation names to method bindings.
        call: Syntactic sugar for calling operations. Instead of::

                client.invoke('find', [1])

            Replace with either of::

                client.call.find(1)
                client.call['find'](1)

    Raises:
        ConfigurationError: If an option is invalid, the endpoint is not supported, or
            two operations share a public name.
        UnresolvableTypeError: If a parameter or return type cannot be resolved.
    """

    def __init__(
        self,
        api: API,
        endpoint: str,
        options: Optional[Mapping[str, Any]] = None,
        /,
        *,
        driver: Optional[remote.Driver] = None,
        lookup: Optional[TypeLookup] = None,
    ) -> None:
        self.api = api
        self.endpoint = endpoint
        self.config = ClientConfig.from_options(options, endpoint=endpoint)
        self.lookup = lookup or TypeRegistry(namespace=self.config.namespace)
        self.owns_driver = driver is None
        self.driver = driver or remote.connect(endpoint, timeout=self.config.timeout)
        try:
            bindings = build_bindings(
                api,
                self.config.namespace,
                self.config.action_base or '',
                self.lookup,
                inflect=api.inflect,
                driver=self.driver,
            )
        except BaseException:
            self.close()
            raise
        self.bindings: Mapping[str, MethodBinding] = types.MappingProxyType(bindings)
        self.call = CallFactory(self.invoke, self.bindings)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.api.name or "API"!r}, {self.endpoint!r})'

    def __enter__(self) -> 'Client':
        return self

    def __exit__(
        self,
        _exc_type: Optional[type[BaseException]],
        _exc: Optional[BaseException],
        _traceback: Optional[types.TracebackType],
    ) -> None:
        self.close()

    def close(self) -> None:
        """Release the driver, if this client built it."""
        if self.owns_driver and isinstance(self.driver, remote.BaseDriver):
            self.driver.close()

    def invoke(self, name: str, args: Sequence[Any] = ()) -> Any:
        """Call a bound operation.

        Parameters:
            name: The internal name of the operation.
            args: Positional arguments, in declaration order.

        Returns:
            Whatever the driver returns.

        Raises:
            UnboundOperationError: If no operation of that name was bound. The driver is
                not contacted.
        """
        if name not in self.bindings:
            raise UnboundOperationError('no such operation', name=name)
        return self.driver.call(name, *args)
