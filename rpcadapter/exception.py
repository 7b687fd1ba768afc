"""Common adapter exceptions."""

from typing import Any

# isort: unique-list
__all__ = [
    'ConfigurationError',
    'RemoteAdapterException',
    'UnboundOperationError',
    'UnresolvableTypeError',
]


class RemoteAdapterException(Exception):
    """Base exception for the adapter's business logic.

    Parameters:
        message: A human-readable description of the exception.
        context: Machine-readable data.
    """

    def __init__(self, message: str, /, **context: Any) -> None:
        super().__init__(message)
        self.context = context

    def __repr__(self, /) -> str:
        cls_name, args = self.__class__.__name__, [repr(self.args[0])]
        args.extend(f'{name}={value!r}' for name, value in self.context.items())
        return f'{cls_name}({", ".join(args)})'


class ConfigurationError(RemoteAdapterException):
    """The API description or client options cannot be bound.

    Only raised while a client is being constructed, never during a call.
    """


class UnresolvableTypeError(ConfigurationError):
    """A declared parameter or return type has no protocol mapping."""


class UnboundOperationError(RemoteAdapterException, AttributeError):
    """A call was attempted against an operation that was never bound.

    Also an :class:`AttributeError`, so that :func:`hasattr` works on the
    attribute-style call surface (:attr:`rpcadapter.client.Client.call`).
    """
