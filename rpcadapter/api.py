"""Declarative API descriptions.

An :class:`API` is an ordered collection of :class:`Operation` definitions, each of
which names a remotely callable procedure along with its parameter and return types:

    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class Person:
    ...     name: str
    ...     age: int
    >>> person_api = API('PersonAPI', inflect=camelize)
    >>> _ = person_api.add('find_all', returns=list[Person])
    >>> _ = person_api.add('find', expects=[int], returns=Person)
    >>> _ = person_api.add('rename', expects=[int, {'name': str}])
    >>> [person_api.public_name(operation.name) for operation in person_api]
    ['FindAll', 'Find', 'Rename']

A parameter descriptor is either a bare type, which receives a positional name when
bound (``param1``, ``param2``, ...), or a single-entry mapping from an explicit
parameter name to a type. Types are opaque to this module; they only need to be
understood by the type lookup the client is built with (see :mod:`rpcadapter.mapping`).

The description is read-only once a client has been built from it.
"""

import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .exception import ConfigurationError

__all__ = [
    'API',
    'Operation',
    'ParameterDescriptor',
    'TypeDescriptor',
    'camelize',
    'identity',
]

TypeDescriptor = Any
ParameterDescriptor = Union[TypeDescriptor, Mapping[str, TypeDescriptor]]
NamingTransform = Callable[[str], str]


def identity(name: str, /) -> str:
    """The default naming transform, which exposes internal names as they are."""
    return name


def camelize(name: str, /) -> str:
    """Transform a ``snake_case`` name into ``CamelCase``.

    Examples:
        >>> camelize('find_all')
        'FindAll'
        >>> camelize('get_http_status')
        'GetHttpStatus'
        >>> camelize('_private__name_')
        'PrivateName'
        >>> camelize('FindAll')
        'FindAll'
    """
    return ''.join(word[:1].upper() + word[1:] for word in re.split(r'_+', name))


@dataclass(frozen=True)
class Operation:
    """A single remotely callable procedure.

    Parameters:
        name: The internal identifier. Calls are dispatched by this name.
        expects: Parameter descriptors, in the order the remote procedure expects its
            arguments.
        returns: The return type descriptor, or ``None`` if the procedure produces no
            meaningful result.

    Raises:
        ConfigurationError: If the name is empty or a parameter descriptor is a mapping
            without exactly one string key.
    """

    name: str
    expects: tuple[ParameterDescriptor, ...] = ()
    returns: Optional[TypeDescriptor] = None

    def __post_init__(self, /) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError('operation name must be a nonempty string', name=self.name)
        if isinstance(self.expects, (str, bytes)) or not isinstance(self.expects, Sequence):
            raise ConfigurationError(
                'expected parameters must be a sequence',
                operation=self.name,
            )
        for descriptor in self.expects:
            if isinstance(descriptor, Mapping):
                keys = list(descriptor)
                if len(keys) != 1 or not isinstance(keys[0], str) or not keys[0]:
                    raise ConfigurationError(
                        'named parameter must map exactly one name to a type',
                        operation=self.name,
                        names=keys,
                    )
        object.__setattr__(self, 'expects', tuple(self.expects))

    @staticmethod
    def split_parameter(descriptor: ParameterDescriptor, /) -> tuple[Optional[str], TypeDescriptor]:
        """Split a parameter descriptor into its explicit name (if any) and its type.

        Examples:
            >>> Operation.split_parameter(int)
            (None, <class 'int'>)
            >>> Operation.split_parameter({'count': int})
            ('count', <class 'int'>)
        """
        if isinstance(descriptor, Mapping):
            ((name, type_descriptor),) = descriptor.items()
            return name, type_descriptor
        return None, descriptor


@dataclass
class API:
    """An ordered collection of operations exposed by a remote service.

    Parameters:
        name: A human-readable name for the API. Only used in log events and errors.
        inflect: The naming transform applied to each operation's internal name to
            produce the name exposed to the remote protocol.
        operations: Operations keyed by internal name, in declaration order.
    """

    name: str = ''
    inflect: NamingTransform = identity
    operations: dict[str, Operation] = field(default_factory=dict)

    def add(
        self,
        name: str,
        /,
        *,
        expects: Sequence[ParameterDescriptor] = (),
        returns: Optional[TypeDescriptor] = None,
    ) -> Operation:
        """Declare an operation.

        Raises:
            ConfigurationError: If an operation with the same internal name already
                exists or the definition is invalid.
        """
        if name in self.operations:
            raise ConfigurationError('operation already declared', api=self.name, name=name)
        operation = Operation(name, tuple(expects), returns)
        self.operations[name] = operation
        return operation

    def public_name(self, name: str, /) -> str:
        """The name exposed to the remote protocol for the given internal name."""
        return self.inflect(name)

    def __iter__(self, /) -> Iterator[Operation]:
        return iter(self.operations.values())

    def __len__(self, /) -> int:
        return len(self.operations)

    def __contains__(self, name: object, /) -> bool:
        return name in self.operations

    def __getitem__(self, name: str, /) -> Operation:
        return self.operations[name]
