import json

import pytest

from peernet.config import Config, load_config
from peernet.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # Keep a developer's .env or shell settings out of the tests
    monkeypatch.chdir(tmp_path)
    for key in ('PEERNET_PEER_PORT', 'PEERNET_BCAST_PORT', 'PEERNET_PEER_TIMEOUT',
                'PEERNET_ANNOUNCE_INTERVAL', 'PEERNET_IDENTITY', 'PEERNET_LOG_LEVEL',
                'PEERNET_UPDATE_QUEUE_SIZE'):
        monkeypatch.delenv(key, raising=False)


def test_defaults_are_valid():
    config = Config().validate()

    assert config.peer_port == 9877
    assert config.bcast_port == 9876
    assert config.peer_timeout >= 5 * config.announce_interval


def test_from_env(monkeypatch):
    monkeypatch.setenv('PEERNET_PEER_PORT', '10000')
    monkeypatch.setenv('PEERNET_PEER_TIMEOUT', '0.5')
    monkeypatch.setenv('PEERNET_IDENTITY', 'me:1')

    config = Config.from_env()

    assert config.peer_port == 10000
    assert config.peer_timeout == 0.5
    assert config.identity == 'me:1'


def test_save_and_load_file(tmp_path):
    path = tmp_path / 'config.json'
    Config(peer_port=12000, announce_interval=0.02, peer_timeout=0.2).save(path)

    config = Config.from_file(path)

    assert config.peer_port == 12000
    assert config.announce_interval == 0.02
    assert json.loads(path.read_text())['peer_timeout'] == 0.2


def test_missing_file_gives_defaults(tmp_path):
    assert Config.from_file(tmp_path / 'nope.json') == Config()


def test_env_overrides_file(monkeypatch, tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'peer_port': 12000, 'bcast_port': 12001}))
    monkeypatch.setenv('PEERNET_PEER_PORT', '13000')

    config = load_config(path)

    assert config.peer_port == 13000
    assert config.bcast_port == 12001


def test_timeout_must_cover_several_heartbeats():
    with pytest.raises(ConfigError, match="5x"):
        Config(announce_interval=0.05, peer_timeout=0.1).validate()


@pytest.mark.parametrize("changes", [
    {'peer_port': 0},
    {'bcast_port': 70000},
    {'announce_interval': 0},
    {'peer_timeout': -1.0},
    {'update_queue_size': -1},
])
def test_invalid_values(changes):
    with pytest.raises(ConfigError):
        Config(**changes).validate()


def test_load_config_validates(monkeypatch):
    monkeypatch.setenv('PEERNET_PEER_TIMEOUT', '0.01')

    with pytest.raises(ConfigError):
        load_config()


@pytest.mark.parametrize("key, value", [
    ('PEERNET_PEER_PORT', 'abc'),
    ('PEERNET_PEER_TIMEOUT', 'soon'),
    ('PEERNET_UPDATE_QUEUE_SIZE', '1.5'),
])
def test_unparsable_env_value(monkeypatch, key, value):
    monkeypatch.setenv(key, value)

    with pytest.raises(ConfigError, match=key):
        load_config()


@pytest.mark.parametrize("data", [
    {'peer_port': '9877'},
    {'peer_timeout': '0.1'},
    {'announce_interval': True},
    {'broadcast_addr': 255},
    {'identity': 7},
])
def test_wrongly_typed_file_value(tmp_path, data):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps(data))

    with pytest.raises(ConfigError, match=next(iter(data))):
        load_config(path)


def test_file_must_be_json_object(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text('[9877]')

    with pytest.raises(ConfigError):
        Config.from_file(path)


def test_file_with_broken_json(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text('{"peer_port": ')

    with pytest.raises(ConfigError):
        Config.from_file(path)
