import dataclasses

import pytest

from rpcadapter import log
from rpcadapter.api import API, Operation, camelize
from rpcadapter.binding import (
    Direction,
    MethodBinding,
    ParameterBinding,
    bind_operation,
    build_bindings,
)
from rpcadapter.exception import ConfigurationError, UnresolvableTypeError
from rpcadapter.mapping import TypeRegistry

NAMESPACE, ACTION_BASE = 'urn:PersonService:', '/api/person'


@dataclasses.dataclass
class Person:
    name: str
    age: int


class Unmapped:
    pass


@dataclasses.dataclass
class RecordingDriver:
    registered: list[MethodBinding] = dataclasses.field(default_factory=list)

    def register(self, binding: MethodBinding) -> None:
        self.registered.append(binding)


@pytest.fixture(autouse=True)
def logger():
    log.configure()


@pytest.fixture
def registry():
    return TypeRegistry(namespace=NAMESPACE)


@pytest.fixture
def person_api():
    person_api = API('PersonAPI', inflect=camelize)
    person_api.add('find_all', returns=list[Person])
    person_api.add('find', expects=[int], returns=Person)
    person_api.add('rename', expects=[int, {'name': str}, bool])
    person_api.add('ping')
    return person_api


def build(person_api, registry, **kwargs):
    return build_bindings(
        person_api,
        NAMESPACE,
        ACTION_BASE,
        registry,
        inflect=person_api.inflect,
        **kwargs,
    )


def test_names(person_api, registry):
    bindings = build(person_api, registry)
    assert list(bindings) == ['find_all', 'find', 'rename', 'ping']
    find_all = bindings['find_all']
    assert find_all.name == 'find_all'
    assert find_all.public_name == 'FindAll'
    assert find_all.qualified_name == 'urn:PersonService:FindAll'
    assert find_all.action == '/api/person/FindAll'
    assert bindings['ping'].action == '/api/person/Ping'


def test_deterministic(person_api, registry):
    first = build(person_api, registry)
    second = build(person_api, TypeRegistry(namespace=NAMESPACE))
    for name in first:
        assert first[name].qualified_name == second[name].qualified_name
        assert first[name].action == second[name].action
    assert first == build(person_api, registry)


def test_parameters(person_api, registry):
    bindings = build(person_api, registry)
    assert bindings['find_all'].parameters == (
        ParameterBinding(Direction.RETVAL, 'return', registry.resolve(list[Person])),
    )
    assert bindings['find_all'].inputs == ()
    assert bindings['find_all'].arity == 0
    find = bindings['find']
    assert [tuple(param)[:2] for param in find.parameters] == [
        (Direction.IN, 'param1'),
        (Direction.RETVAL, 'return'),
    ]
    assert find.retval.mapping is registry.resolve(Person)
    ping = bindings['ping']
    assert ping.parameters == () and ping.retval is None and ping.arity == 0


def test_positional_naming(person_api, registry):
    rename = build(person_api, registry)['rename']
    assert [param.name for param in rename.parameters] == ['param1', 'name', 'param2']
    assert [param.direction for param in rename.parameters] == [Direction.IN] * 3
    assert [param.mapping.python_type for param in rename.inputs] == [int, str, bool]
    assert rename.retval is None
    assert rename.arity == 3


def test_named_first(registry):
    operation = Operation('op', ({'first': str}, int, {'third': float}, bytes), int)
    binding = bind_operation(operation, 'Op', NAMESPACE, ACTION_BASE, registry)
    assert [param.name for param in binding.parameters] == [
        'first',
        'param1',
        'third',
        'param2',
        'return',
    ]
    assert binding.parameters[-1].direction is Direction.RETVAL


def test_registration(mocker, person_api, registry):
    driver = RecordingDriver()
    bindings = build(person_api, registry, driver=driver)
    assert driver.registered == list(bindings.values())
    lookup = mocker.Mock()
    lookup.resolve.side_effect = registry.resolve
    build(person_api, lookup)
    assert lookup.resolve.call_count == 6


def test_duplicate_public_name(registry):
    duplicate_api = API(inflect=camelize)
    duplicate_api.add('find_all')
    duplicate_api.add('findAll', expects=[int])
    driver = RecordingDriver()
    with pytest.raises(ConfigurationError) as excinfo:
        build(duplicate_api, registry, driver=driver)
    assert excinfo.value.context == {
        'public_name': 'FindAll',
        'operations': ['find_all', 'findAll'],
    }
    assert driver.registered == []


def test_duplicate_operation_name(registry):
    operations = [Operation('find'), Operation('find', (int,))]
    with pytest.raises(ConfigurationError):
        build_bindings(operations, NAMESPACE, ACTION_BASE, registry)


def test_duplicate_parameter_name(registry):
    operation = Operation('op', (int, {'param1': str}))
    with pytest.raises(ConfigurationError):
        bind_operation(operation, 'op', NAMESPACE, ACTION_BASE, registry)


@pytest.mark.parametrize('operation', [
    Operation('op', (Unmapped,)),
    Operation('op', ({'value': Unmapped},)),
    Operation('op', (), Unmapped),
])
def test_unresolvable(person_api, registry, operation):
    person_api.operations[operation.name] = operation
    driver = RecordingDriver()
    with pytest.raises(UnresolvableTypeError):
        build(person_api, registry, driver=driver)
    assert driver.registered == []


def test_binding_immutable(person_api, registry):
    binding = build(person_api, registry)['find']
    with pytest.raises(dataclasses.FrozenInstanceError):
        binding.action = '/other'
    assert isinstance(binding.parameters, tuple)
