"""Method bindings: the protocol-ready form of an :class:`~rpcadapter.api.Operation`.

:func:`build_bindings` resolves every parameter and return type of every operation
exactly once and, only after the whole set has been validated, registers each binding
with the driver that will perform the calls.
"""

import enum
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import NamedTuple, Optional, Protocol

from . import log
from .api import Operation, identity
from .exception import ConfigurationError
from .mapping import TypeLookup, TypeMapping

__all__ = [
    'Direction',
    'MethodBinding',
    'ParameterBinding',
    'Registrar',
    'bind_operation',
    'build_bindings',
]

RETURN_NAME = 'return'


@enum.unique
class Direction(str, enum.Enum):
    """The direction in which a parameter travels.

    Attributes:
        IN: An argument sent to the remote procedure.
        RETVAL: The value returned by the remote procedure.
    """

    IN = 'in'
    RETVAL = 'retval'


class ParameterBinding(NamedTuple):
    direction: Direction
    name: str
    mapping: TypeMapping


@dataclass(frozen=True)
class MethodBinding:
    """A fully resolved remote method.

    Parameters:
        name: The internal identifier calls are dispatched by.
        public_name: The name exposed to the remote protocol.
        qualified_name: The public name scoped by the service namespace.
        action: The action identifier sent alongside each call.
        parameters: Input parameters in declaration order, followed by at most one
            return parameter.
    """

    name: str
    public_name: str
    qualified_name: str
    action: str
    parameters: tuple[ParameterBinding, ...] = ()

    @property
    def inputs(self, /) -> tuple[ParameterBinding, ...]:
        return tuple(param for param in self.parameters if param.direction is Direction.IN)

    @property
    def retval(self, /) -> Optional[ParameterBinding]:
        if self.parameters and self.parameters[-1].direction is Direction.RETVAL:
            return self.parameters[-1]
        return None

    @property
    def arity(self, /) -> int:
        """The number of arguments the remote procedure takes."""
        return len(self.inputs)


class Registrar(Protocol):
    """Anything that accepts method bindings, typically a transport driver."""

    def register(self, binding: MethodBinding, /) -> None:
        ...


def bind_operation(
    operation: Operation,
    public_name: str,
    namespace: str,
    action_base: str,
    lookup: TypeLookup,
) -> MethodBinding:
    """Build the binding of a single operation.

    Unnamed parameters are named ``param1``, ``param2``, and so on. Only unnamed
    parameters advance the counter, so ``[A, {'custom': B}, C]`` binds as ``param1``,
    ``custom``, ``param2``.

    Raises:
        ConfigurationError: If two parameters share a name.
        UnresolvableTypeError: If a parameter or return type cannot be resolved.
    """
    parameters: list[ParameterBinding] = []
    position = 1
    for descriptor in operation.expects:
        name, type_descriptor = Operation.split_parameter(descriptor)
        if name is None:
            name = f'param{position}'
            position += 1
        parameters.append(ParameterBinding(Direction.IN, name, lookup.resolve(type_descriptor)))
    names = [param.name for param in parameters]
    if len(set(names)) != len(names):
        raise ConfigurationError(
            'duplicate parameter name',
            operation=operation.name,
            parameters=names,
        )
    if operation.returns is not None:
        mapping = lookup.resolve(operation.returns)
        parameters.append(ParameterBinding(Direction.RETVAL, RETURN_NAME, mapping))
    return MethodBinding(
        name=operation.name,
        public_name=public_name,
        qualified_name=namespace + public_name,
        action=f'{action_base}/{public_name}',
        parameters=tuple(parameters),
    )


def build_bindings(
    operations: Iterable[Operation],
    namespace: str,
    action_base: str,
    lookup: TypeLookup,
    *,
    inflect: Callable[[str], str] = identity,
    driver: Optional[Registrar] = None,
) -> dict[str, MethodBinding]:
    """Build the bindings of every operation, in declaration order.

    Parameters:
        operations: The operations to bind.
        namespace: Prefix of every qualified name.
        action_base: Prefix of every action identifier.
        lookup: Resolves parameter and return types.
        inflect: Computes the public name of an operation from its internal name.
        driver: If provided, every binding is registered with it once the whole set
            has been built. Nothing is registered if any operation fails to bind.

    Returns:
        A mapping from internal names to bindings, in declaration order.

    Raises:
        ConfigurationError: If two operations share an internal or a public name.
        UnresolvableTypeError: If a parameter or return type cannot be resolved.
    """
    logger = log.get_logger().bind(namespace=namespace)
    bindings: dict[str, MethodBinding] = {}
    owners: dict[str, str] = {}
    for operation in operations:
        if operation.name in bindings:
            raise ConfigurationError('duplicate operation name', name=operation.name)
        public_name = inflect(operation.name)
        if public_name in owners:
            raise ConfigurationError(
                'duplicate public name',
                public_name=public_name,
                operations=[owners[public_name], operation.name],
            )
        owners[public_name] = operation.name
        binding = bind_operation(operation, public_name, namespace, action_base, lookup)
        bindings[operation.name] = binding
        logger.debug(
            'Bound remote method',
            name=binding.name,
            qualified_name=binding.qualified_name,
            action=binding.action,
        )
    if driver is not None:
        for binding in bindings.values():
            driver.register(binding)
    return bindings
