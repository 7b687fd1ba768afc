"""Transport drivers.

A driver is the only component that talks to the network. The client registers every
:class:`~rpcadapter.binding.MethodBinding` with its driver once, at construction, and
afterwards asks the driver to perform calls by internal method name.

Both drivers in this module speak the same message format, which is based on
`MessagePack-RPC`_, except this module uses :mod:`cbor2` for serialization:

* A request is ``[0, message_id, qualified_name, arguments]``.
* A response is ``[1, message_id, error, result]``, where ``error`` is either ``None``
  or ``[message, context]``.

The action identifier of each call travels outside the payload: as the
``X-Remote-Action`` header for HTTP, or as the first frame of the message for sockets.

.. _MessagePack-RPC:
    https://github.com/msgpack-rpc/msgpack-rpc/blob/master/spec.md
"""

import abc
import contextlib
import enum
import random
import types
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, TypeVar, Union
from urllib.parse import urlsplit

import cbor2
import httpx
import zmq
import zmq.error

from . import log
from .binding import MethodBinding
from .exception import ConfigurationError, RemoteAdapterException

__all__ = [
    'ACTION_HEADER',
    'CONTENT_TYPE',
    'BaseDriver',
    'Driver',
    'HTTPDriver',
    'MessageType',
    'RemoteCallError',
    'SocketDriver',
    'connect',
]

ACTION_HEADER = 'X-Remote-Action'
CONTENT_TYPE = 'application/cbor'

DriverType = TypeVar('DriverType', bound='BaseDriver')
SocketOptions = dict[int, Union[int, bytes]]


class RemoteCallError(RemoteAdapterException):
    """Error produced by executing a remote call.

    Parameters:
        message: A human-readable description of the exception.
        context: Machine-readable data.
    """


class MessageType(enum.IntEnum):
    """The message type ID.

    Attributes:
        REQUEST: Denotes a request message sent by clients. Requires a response.
        RESPONSE: Denotes a response message sent by services.
    """

    REQUEST = 0
    RESPONSE = 1


class Driver(Protocol):
    """The interface the client needs from a transport."""

    def register(self, binding: MethodBinding, /) -> None:
        """Prepare to perform calls of a method. Called once per method, before use."""

    def call(self, name: str, /, *args: Any) -> Any:
        """Perform a call of a registered method and return its decoded result."""


def _encode(obj: Any, /) -> bytes:
    """Encode an object as a CBOR-encoded buffer.

    Raises:
        cbor2.CBOREncodeError: If the encoding fails.
    """
    return cbor2.dumps(obj)


def _decode(buf: bytes, /) -> Any:
    """Decode a CBOR-encoded buffer.

    Raises:
        cbor2.CBORDecodeError: If the decoding fails.
    """
    return cbor2.loads(buf)


@dataclass  # type: ignore[misc]
class BaseDriver(abc.ABC):  # https://github.com/python/mypy/issues/5374
    """A driver that encodes calls with each method's type mappings.

    Subclasses only need to implement :meth:`exchange`, which moves one encoded request
    to the service and returns the encoded response. :class:`BaseDriver` supports the
    context manager protocol for releasing the underlying transport.

    Parameters:
        endpoint: The address of the remote service.
        timeout: Maximum duration (in seconds) to wait for a response.
        logger: A logger instance.
        bindings: Registered methods, keyed by internal name.
    """

    endpoint: str
    timeout: float = 5
    logger: log.Logger = field(default_factory=log.get_logger)
    bindings: dict[str, MethodBinding] = field(default_factory=dict, init=False, repr=False)
    lower: int = field(default=0, init=False, repr=False)
    upper: int = field(default=(1 << 32) - 1, init=False, repr=False)

    def __post_init__(self, /) -> None:
        if self.timeout <= 0:
            raise ConfigurationError('timeout must be positive', timeout=self.timeout)

    def __enter__(self: DriverType, /) -> DriverType:
        return self

    def __exit__(
        self,
        _exc_type: Optional[type[BaseException]],
        _exc: Optional[BaseException],
        _traceback: Optional[types.TracebackType],
        /,
    ) -> None:
        self.close()

    def register(self, binding: MethodBinding, /) -> None:
        """Register a method.

        Raises:
            ConfigurationError: If a method with the same internal name is registered.
        """
        if binding.name in self.bindings:
            raise ConfigurationError('method already registered', name=binding.name)
        self.bindings[binding.name] = binding

    def generate_id(self, /) -> int:
        """Generate a message ID to match a response to its request."""
        return random.randint(self.lower, self.upper)

    def call(self, name: str, /, *args: Any) -> Any:
        """Perform a remote call.

        Parameters:
            name: The internal name of a registered method.
            args: Positional arguments, in declaration order.

        Returns:
            The decoded result, or ``None`` if the method declares no return type.

        Raises:
            TypeError: If the number of arguments does not match the method.
            RemoteCallError: If the method is not registered, the service returned an
                error, or the response is malformed.
            cbor2.CBOREncodeError: If the arguments were not serializable.
        """
        try:
            binding = self.bindings[name]
        except KeyError as exc:
            raise RemoteCallError('method not registered', name=name) from exc
        if len(args) != binding.arity:
            raise TypeError(
                f'{binding.public_name}() takes {binding.arity} positional arguments '
                f'but {len(args)} were given'
            )
        arguments = [param.mapping.encode(arg) for param, arg in zip(binding.inputs, args)]
        message_id = self.generate_id()
        self.logger.debug(
            'Issuing remote call',
            method=binding.qualified_name,
            action=binding.action,
            message_id=message_id,
        )
        request = [MessageType.REQUEST.value, message_id, binding.qualified_name, arguments]
        response = _decode(self.exchange(binding, _encode(request)))
        result = self._unpack(response, message_id)
        retval = binding.retval
        return retval.mapping.decode(result) if retval else None

    @staticmethod
    def _unpack(response: Any, message_id: int, /) -> Any:
        """Validate a decoded response and extract its result.

        Raises:
            RemoteCallError: If the response is malformed, does not match the request, or
                carries an error.
        """
        try:
            message_type, response_id, error, result = response
        except (TypeError, ValueError) as exc:
            raise RemoteCallError('malformed response') from exc
        if message_type != MessageType.RESPONSE:
            raise RemoteCallError(
                'client only receives RESPONSE messages',
                message_type=message_type,
            )
        if response_id != message_id:
            raise RemoteCallError(
                'client received unexpected response',
                message_id=message_id,
                response_id=response_id,
            )
        if error is None:
            return result
        if isinstance(error, list) and len(error) == 2 and isinstance(error[1], dict):
            error_message, context = error
            raise RemoteCallError(
                str(error_message),
                **{str(key): value for key, value in context.items()},
            )
        raise RemoteCallError(str(error))

    @abc.abstractmethod
    def exchange(self, binding: MethodBinding, payload: bytes, /) -> bytes:
        """Send an encoded request and wait for the encoded response.

        Parameters:
            binding: The method being called. Carries the action identifier.
            payload: The encoded request.

        Returns:
            The encoded response.
        """

    def close(self, /) -> None:
        """Release the underlying transport."""


@dataclass
class HTTPDriver(BaseDriver):
    """Perform calls as HTTP ``POST`` requests with :mod:`httpx`.

    Parameters:
        headers: Extra headers sent with every request.
        transport: A custom :mod:`httpx` transport, such as :class:`httpx.MockTransport`.
    """

    headers: dict[str, str] = field(default_factory=dict)
    transport: Optional[httpx.BaseTransport] = None
    client: httpx.Client = field(init=False, repr=False)

    def __post_init__(self, /) -> None:
        super().__post_init__()
        self.client = httpx.Client(
            headers={'Content-Type': CONTENT_TYPE, 'Accept': CONTENT_TYPE, **self.headers},
            timeout=self.timeout,
            transport=self.transport,
        )

    def exchange(self, binding: MethodBinding, payload: bytes, /) -> bytes:
        """Post the request to the endpoint.

        Raises:
            httpx.HTTPError: If the request fails or the service responds with an error
                status and no encoded response.
            RemoteCallError: If the service responds successfully with a payload that
                is not CBOR-encoded.
        """
        response = self.client.post(
            self.endpoint,
            content=payload,
            headers={ACTION_HEADER: binding.action},
        )
        content_type = response.headers.get('Content-Type', '').split(';')[0].strip()
        if content_type != CONTENT_TYPE:
            response.raise_for_status()
            raise RemoteCallError(
                'unexpected content type',
                content_type=content_type,
                status_code=response.status_code,
            )
        return response.content

    def close(self, /) -> None:
        self.client.close()


@dataclass
class SocketDriver(BaseDriver):
    """Perform calls over a ZMQ ``DEALER`` socket.

    Each request is sent as two frames, the action identifier and the payload. The
    first frame of the reply is the encoded response.

    When the socket times out, it is closed and rebuilt to reset its internal state, so
    that a late response cannot be mistaken for the response to a later request.

    Parameters:
        options: A mapping of `ZMQ socket option symbols
            <http://api.zeromq.org/4-3:zmq-setsockopt>`_ to their values. The send and
            receive timeouts default to :attr:`timeout`.
    """

    options: SocketOptions = field(default_factory=dict)
    socket: zmq.Socket = field(init=False, repr=False)

    def __post_init__(self, /) -> None:
        super().__post_init__()
        timeout_ms = int(self.timeout * 1000)
        self.options = {
            zmq.SNDTIMEO: timeout_ms,
            zmq.RCVTIMEO: timeout_ms,
            zmq.LINGER: 0,
            **self.options,
        }
        self.open()

    def open(self, /) -> None:
        """Open the socket and connect it to the endpoint."""
        ctx = zmq.Context.instance()
        self.socket = ctx.socket(zmq.DEALER)
        for name, value in self.options.items():
            self.socket.set(name, value)
        self.socket.connect(self.endpoint)

    def close(self, /) -> None:
        self.socket.close()

    @property
    def closed(self, /) -> bool:
        return bool(self.socket.closed) if getattr(self, 'socket', None) else True

    @contextlib.contextmanager
    def _maybe_reopen(self, /, *exc_types: type[Exception]) -> Iterator[None]:
        """A context manager for reopening the socket when an error occurs.

        Parameters:
            exc_types: Exception types to catch. If none are given, defaults to
                :class:`Exception`.

        Raises:
            RemoteCallError: If the socket is reopened.
        """
        if self.closed:
            raise RemoteCallError('transport is closed')
        exc_types = exc_types or (Exception,)
        try:
            yield
        except exc_types as exc:
            self.close()
            self.open()
            raise RemoteCallError('socket timed out', timeout=self.timeout) from exc

    def exchange(self, binding: MethodBinding, payload: bytes, /) -> bytes:
        with self._maybe_reopen(zmq.error.Again):
            self.socket.send_multipart([binding.action.encode(), payload])
            reply, *_ = self.socket.recv_multipart()
        return reply


def connect(endpoint: str, /, *, timeout: float = 5, **options: Any) -> BaseDriver:
    """Build the driver for an endpoint, chosen by the scheme of its URL.

    Parameters:
        endpoint: ``http://`` and ``https://`` endpoints use :class:`HTTPDriver`;
            ``tcp://``, ``ipc://``, and ``inproc://`` endpoints use :class:`SocketDriver`.
        timeout: Maximum duration (in seconds) to wait for a response.
        options: Other keyword arguments passed to the driver.

    Raises:
        ConfigurationError: If the scheme is not supported.
    """
    scheme = urlsplit(endpoint).scheme.lower()
    if scheme in {'http', 'https'}:
        return HTTPDriver(endpoint, timeout=timeout, **options)
    if scheme in {'tcp', 'ipc', 'inproc'}:
        return SocketDriver(endpoint, timeout=timeout, **options)
    raise ConfigurationError('unsupported endpoint scheme', endpoint=endpoint, scheme=scheme)
