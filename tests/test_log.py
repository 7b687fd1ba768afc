import pytest
import structlog

from rpcadapter import log
from rpcadapter.api import API
from rpcadapter.client import Client
from rpcadapter.exception import ConfigurationError


@pytest.fixture(autouse=True)
def unconfigured():
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.fixture
def ping_api():
    ping_api = API('PingAPI')
    ping_api.add('ping', returns=str)
    return ping_api


@pytest.fixture
def driver(mocker):
    driver = mocker.Mock(spec=['register', 'call'])
    driver.call.return_value = 'pong'
    return driver


def test_silent_until_configured(capsys, ping_api, driver):
    client = Client(ping_api, 'http://example.com/api', driver=driver)
    assert client.invoke('ping') == 'pong'
    log.get_logger().error('Unconfigured event')
    out, err = capsys.readouterr()
    assert out == '' and err == ''


def test_configured(capsys, ping_api, driver):
    log.configure(level='debug')
    Client(ping_api, 'http://example.com/api', driver=driver)
    out, _ = capsys.readouterr()
    assert 'Bound remote method' in out
    assert '"level":"debug"' in out


def test_level_filter(capsys):
    log.configure(level='warn')
    logger = log.get_logger()
    logger.info('Dropped event')
    logger.error('Kept event', exc_info=ConfigurationError('bad option', option='colour'))
    out, _ = capsys.readouterr()
    assert 'Dropped event' not in out
    assert 'Kept event' in out
    assert '"option":"colour"' in out


def test_null_logger(capsys):
    log.configure(level='debug')
    log.get_null_logger().critical('Dropped event')
    assert capsys.readouterr().out == ''
