import dataclasses

import cbor2
import httpx
import orjson as json
import pytest
from click.testing import CliRunner

from rpcadapter import API, camelize, remote
from rpcadapter.cli import cli

ENDPOINT = 'http://example.com/api/person/'


@dataclasses.dataclass
class Person:
    name: str
    age: int


PERSON_API = API('PersonAPI', inflect=camelize)
PERSON_API.add('find_all', returns=list[Person])
PERSON_API.add('find', expects=[int], returns=Person)
PERSON_API.add('rename', expects=[int, {'name': str}])


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args):
    return runner.invoke(cli, ['--log-level', 'critical', *args], catch_exceptions=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'client.yaml'
    path.write_text('service_name: PersonService\naction_base: /v2/person/\ntimeout: 2\n')
    return path


@pytest.fixture
def service(mocker):
    requests, responses = [], []

    def handler(request):
        requests.append(request)
        _, message_id, _, _ = cbor2.loads(request.content)
        error, result = responses.pop(0)
        return httpx.Response(
            200,
            content=cbor2.dumps([1, message_id, error, result]),
            headers={'Content-Type': remote.CONTENT_TYPE},
        )

    def connect(endpoint, **options):
        transport = httpx.MockTransport(handler)
        return remote.HTTPDriver(endpoint, transport=transport, **options)

    mocker.patch('rpcadapter.remote.connect', side_effect=connect)
    return requests, responses


def test_bindings(runner):
    result = invoke(runner, 'bindings', '--api', 'test_cli:PERSON_API', ENDPOINT)
    assert result.exit_code == 0
    find_all, find, rename = map(json.loads, result.output.splitlines())
    assert find_all == {
        'name': 'find_all',
        'public_name': 'FindAll',
        'qualified_name': 'urn:RemoteService:FindAll',
        'action': '/api/person/FindAll',
        'parameters': [
            {'direction': 'retval', 'name': 'return', 'type': 'urn:RemoteService:Person[]'},
        ],
    }
    assert [param['name'] for param in rename['parameters']] == ['param1', 'name']
    assert [param['type'] for param in find['parameters']] == [
        'int',
        'urn:RemoteService:Person',
    ]


def test_bindings_options(runner, config_file):
    result = invoke(
        runner,
        '--config',
        str(config_file),
        'bindings',
        '--api',
        'test_cli:PERSON_API',
        '--service-name',
        'People',
    )
    assert result.exit_code == 0
    find_all = json.loads(result.output.splitlines()[0])
    assert find_all['qualified_name'] == 'urn:People:FindAll'
    assert find_all['action'] == '/v2/person/FindAll'


@pytest.mark.parametrize('api', ['test_cli', 'test_cli:DNE', 'test_cli:Person'])
def test_bad_api(runner, api):
    result = invoke(runner, 'bindings', '--api', api)
    assert result.exit_code == 2


def test_bad_config(runner, tmp_path):
    path = tmp_path / 'client.yaml'
    path.write_text('colour: blue\n')
    result = invoke(runner, '--config', str(path), 'bindings', '--api', 'test_cli:PERSON_API')
    assert result.exit_code == 2
    assert 'unknown option' in result.output


def test_call(runner, service, config_file):
    requests, responses = service
    responses.append((None, {'name': 'Ada', 'age': 36}))
    result = invoke(
        runner,
        '--config',
        str(config_file),
        'call',
        '--api',
        'test_cli:PERSON_API',
        '--arguments',
        '[1]',
        ENDPOINT,
        'find',
    )
    assert result.exit_code == 0
    assert json.loads(result.output) == {'name': 'Ada', 'age': 36}
    (request,) = requests
    assert request.headers[remote.ACTION_HEADER] == '/v2/person/Find'
    assert cbor2.loads(request.content)[2:] == ['urn:PersonService:Find', [1]]


def test_call_no_arguments(runner, service):
    requests, responses = service
    responses.append((None, []))
    result = invoke(runner, 'call', '--api', 'test_cli:PERSON_API', ENDPOINT, 'find_all')
    assert result.exit_code == 0
    assert json.loads(result.output) == []
    assert requests[0].headers[remote.ACTION_HEADER] == '/api/person/FindAll'


@pytest.mark.parametrize('method,arguments', [
    ('find', '[1]'),
    ('find', '[1, 2]'),
    ('delete', '[]'),
])
def test_call_failure(runner, service, method, arguments):
    _, responses = service
    responses.append((['no such person', {'id': 1}], None))
    result = invoke(
        runner,
        'call',
        '--api',
        'test_cli:PERSON_API',
        '--arguments',
        arguments,
        ENDPOINT,
        method,
    )
    assert result.exit_code == 1


@pytest.mark.parametrize('arguments', ['{"id": 1}', '[1', '1'])
def test_call_bad_arguments(runner, service, arguments):
    result = invoke(
        runner,
        'call',
        '--api',
        'test_cli:PERSON_API',
        '--arguments',
        arguments,
        ENDPOINT,
        'find',
    )
    assert result.exit_code == 2


def test_call_bad_endpoint(runner):
    result = invoke(runner, 'call', '--api', 'test_cli:PERSON_API', 'ftp://example.com', 'find')
    assert result.exit_code == 2
    assert 'unsupported endpoint scheme' in result.output
