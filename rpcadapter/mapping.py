"""Type mappings between domain values and wire values.

The binding builder only needs a :class:`TypeLookup`: something that turns a type
descriptor into a :class:`TypeMapping`. :class:`TypeRegistry` is the lookup clients use
by default. It understands:

* Scalars that :mod:`cbor2` encodes natively (``bool``, ``int``, ``float``, ``str``,
  ``bytes``, :class:`datetime.datetime`, :class:`datetime.date`, and
  :class:`decimal.Decimal`).
* Homogeneous arrays, written as ``list[T]`` or ``Sequence[T]``.
* Nullable values, written as ``Optional[T]``.
* Structs, written as dataclasses. Fields are resolved recursively and encoded as a map
  keyed by field name.

Other scalar types may be added with :meth:`TypeRegistry.register`.
"""

import collections.abc
import dataclasses
import datetime
import decimal
import types
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union

from .exception import ConfigurationError, UnresolvableTypeError

__all__ = [
    'SCALAR_TYPES',
    'TypeLookup',
    'TypeMapping',
    'TypeRegistry',
]

SCALAR_TYPES: dict[type, str] = {
    bool: 'boolean',
    int: 'int',
    float: 'double',
    str: 'string',
    bytes: 'base64Binary',
    datetime.datetime: 'dateTime',
    datetime.date: 'date',
    decimal.Decimal: 'decimal',
}
"""Built-in scalar types and their protocol-level names."""

_SEQUENCE_ORIGINS = (list, tuple, collections.abc.Sequence, collections.abc.MutableSequence)


@dataclass(frozen=True)
class TypeMapping:
    """A protocol-level description of a type.

    Parameters:
        type_name: The name of the type as understood by the remote service.
        python_type: The domain type values are decoded into.
        element: For arrays, the mapping of each element.
        fields: For structs, the name and mapping of each field, in declaration order.
        nullable: Whether ``None`` is an acceptable value.
    """

    type_name: str
    python_type: Any
    element: Optional['TypeMapping'] = None
    fields: tuple[tuple[str, 'TypeMapping'], ...] = ()
    nullable: bool = False

    @property
    def is_array(self, /) -> bool:
        return self.element is not None

    @property
    def is_struct(self, /) -> bool:
        return bool(self.fields) or dataclasses.is_dataclass(self.python_type)

    def encode(self, value: Any, /) -> Any:
        """Convert a domain value into a value :mod:`cbor2` can serialize.

        Structs may be given either as an instance of the dataclass or as a mapping
        keyed by field name.
        """
        if value is None:
            return None
        if self.element is not None:
            return [self.element.encode(item) for item in value]
        if self.is_struct:
            if isinstance(value, Mapping):
                return {
                    name: mapping.encode(value[name])
                    for name, mapping in self.fields
                    if name in value
                }
            return {name: mapping.encode(getattr(value, name)) for name, mapping in self.fields}
        return value

    def decode(self, value: Any, /) -> Any:
        """Convert a deserialized wire value into a domain value."""
        if value is None:
            return None
        if self.element is not None:
            return [self.element.decode(item) for item in value]
        if self.is_struct:
            kwargs = {
                name: mapping.decode(value[name])
                for name, mapping in self.fields
                if name in value
            }
            return self.python_type(**kwargs)
        if self.python_type is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value


class TypeLookup(Protocol):
    """Resolves type descriptors into type mappings."""

    def resolve(self, descriptor: Any, /) -> TypeMapping:
        """Resolve a type descriptor.

        Raises:
            UnresolvableTypeError: If the type has no known mapping.
        """


def _is_optional(descriptor: Any) -> bool:
    origin = typing.get_origin(descriptor)
    if origin is Union or origin is getattr(types, 'UnionType', None):
        return type(None) in typing.get_args(descriptor)
    return False


@dataclass
class TypeRegistry:
    """The default :class:`TypeLookup`.

    Resolved mappings are cached, so each type descriptor is only inspected once per
    registry.

    Parameters:
        namespace: Prefix of the type names given to structs.
        mappings: Resolved mappings keyed by type descriptor.
    """

    namespace: str = ''
    mappings: dict[Any, TypeMapping] = field(default_factory=dict, init=False, repr=False)
    _resolving: set[Any] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self, /) -> None:
        for python_type, type_name in SCALAR_TYPES.items():
            self.register(python_type, type_name)

    def register(self, python_type: type, type_name: Optional[str] = None, /) -> TypeMapping:
        """Register a scalar type, which is passed to the serializer unchanged.

        Parameters:
            python_type: The domain type.
            type_name: The protocol-level name. Defaults to the type's name.

        Raises:
            ConfigurationError: If the type is a dataclass. Dataclasses are structs and
                are resolved field by field instead.
        """
        if dataclasses.is_dataclass(python_type):
            raise ConfigurationError('dataclasses cannot be registered as scalars', type=python_type)
        mapping = TypeMapping(type_name or python_type.__name__, python_type)
        self.mappings[python_type] = mapping
        return mapping

    def resolve(self, descriptor: Any, /) -> TypeMapping:
        try:
            return self.mappings[descriptor]
        except KeyError:
            pass
        except TypeError as exc:
            raise UnresolvableTypeError('type is not hashable', type=descriptor) from exc
        if descriptor in self._resolving:
            raise UnresolvableTypeError('self-referencing type', type=descriptor)
        self._resolving.add(descriptor)
        try:
            mapping = self._build(descriptor)
        finally:
            self._resolving.discard(descriptor)
        self.mappings[descriptor] = mapping
        return mapping

    def _build(self, descriptor: Any) -> TypeMapping:
        if _is_optional(descriptor):
            members = [arg for arg in typing.get_args(descriptor) if arg is not type(None)]
            if len(members) != 1:
                raise UnresolvableTypeError('ambiguous union', type=descriptor)
            return dataclasses.replace(self.resolve(members[0]), nullable=True)
        origin = typing.get_origin(descriptor)
        if origin in _SEQUENCE_ORIGINS:
            args = typing.get_args(descriptor)
            if origin is tuple and (len(args) != 2 or args[1] is not Ellipsis):
                raise UnresolvableTypeError('only variadic tuples are arrays', type=descriptor)
            if not args:
                raise UnresolvableTypeError('array element type is missing', type=descriptor)
            element = self.resolve(args[0])
            return TypeMapping(f'{element.type_name}[]', list, element=element)
        if isinstance(descriptor, type) and dataclasses.is_dataclass(descriptor):
            try:
                hints = typing.get_type_hints(descriptor)
            except NameError as exc:
                raise UnresolvableTypeError('unresolved annotation', type=descriptor) from exc
            fields = tuple(
                (attr.name, self.resolve(hints[attr.name]))
                for attr in dataclasses.fields(descriptor)
                if attr.init
            )
            return TypeMapping(self.namespace + descriptor.__name__, descriptor, fields=fields)
        raise UnresolvableTypeError('type has no mapping', type=descriptor)
