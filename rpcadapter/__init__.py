"""Bind declarative API descriptions to remote services.

An :class:`API` lists the operations a service exposes. A :class:`Client` built from
it resolves every operation into a :class:`~rpcadapter.binding.MethodBinding`,
registers the bindings with a transport driver, and then dispatches calls by name.
"""

from .api import API, Operation, camelize, identity
from .binding import MethodBinding, build_bindings
from .client import Client, ClientConfig
from .exception import (
    ConfigurationError,
    RemoteAdapterException,
    UnboundOperationError,
    UnresolvableTypeError,
)
from .mapping import TypeMapping, TypeRegistry
from .remote import HTTPDriver, RemoteCallError, SocketDriver, connect

__version__ = '0.1.0'

# isort: unique-list
__all__ = [
    'API',
    'Client',
    'ClientConfig',
    'ConfigurationError',
    'HTTPDriver',
    'MethodBinding',
    'Operation',
    'RemoteAdapterException',
    'RemoteCallError',
    'SocketDriver',
    'TypeMapping',
    'TypeRegistry',
    'UnboundOperationError',
    'UnresolvableTypeError',
    'build_bindings',
    'camelize',
    'connect',
    'identity',
]
