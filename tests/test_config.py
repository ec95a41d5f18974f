import logging

import pytest
import yaml

from energypredict.config import Settings, configure_logging, load_settings, load_settings_yaml


def write_yaml(tmp_path, data):
    path = tmp_path / 'settings.yaml'
    path.write_text(yaml.safe_dump(data))
    return path


def test_packaged_defaults():
    settings = load_settings(environ={})
    assert settings == Settings()
    assert settings.poll_interval_s == 8.0
    assert settings.max_poll_attempts == 15
    assert settings.export_filename == 'energy_prediction.csv'


def test_yaml_values(tmp_path):
    path = write_yaml(tmp_path, {'api_base_url': 'http://predict:5000', 'poll_interval_s': 2, 'max_poll_attempts': 4})
    settings = load_settings(path, environ={})
    assert settings.api_base_url == 'http://predict:5000'
    assert settings.poll_interval_s == 2.0
    assert settings.max_poll_attempts == 4
    assert settings.request_timeout_s == 30.0


def test_empty_yaml(tmp_path):
    path = tmp_path / 'settings.yaml'
    path.write_text('')
    assert load_settings_yaml(path) == {}
    assert load_settings(path, environ={}) == Settings()


def test_env_overrides_yaml(tmp_path):
    path = write_yaml(tmp_path, {'poll_interval_s': 2})
    environ = {
        'ENERGYPREDICT_API_URL': 'http://override:1',
        'ENERGYPREDICT_POLL_INTERVAL': '0.5',
        'ENERGYPREDICT_MAX_ATTEMPTS': '3',
        'ENERGYPREDICT_REQUEST_TIMEOUT': '',
        'ENERGYPREDICT_LOG_LEVEL': 'debug',
    }
    settings = load_settings(path, environ=environ)
    assert settings.api_base_url == 'http://override:1'
    assert settings.poll_interval_s == 0.5
    assert settings.max_poll_attempts == 3
    assert settings.request_timeout_s == 30.0
    assert settings.log_level == 'debug'


def test_bad_env_value(tmp_path):
    with pytest.raises(ValueError, match="ENERGYPREDICT_MAX_ATTEMPTS must be a int"):
        load_settings(write_yaml(tmp_path, {}), environ={'ENERGYPREDICT_MAX_ATTEMPTS': 'lots'})


def test_unknown_key(tmp_path):
    with pytest.raises(ValueError, match="poll_every"):
        load_settings(write_yaml(tmp_path, {'poll_every': 3}), environ={})


@pytest.mark.parametrize("field", ['poll_interval_s', 'request_timeout_s'])
def test_non_positive_rejected(field):
    with pytest.raises(ValueError):
        Settings(**{field: 0})


def test_zero_max_attempts_allowed():
    # PollController treats 0 as "time out on the first tick"
    assert Settings(max_poll_attempts=0).max_poll_attempts == 0
    assert load_settings(environ={'ENERGYPREDICT_MAX_ATTEMPTS': '0'}).max_poll_attempts == 0
    with pytest.raises(ValueError):
        Settings(max_poll_attempts=-1)


def test_configure_logging(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, 'basicConfig', lambda **kwargs: calls.append(kwargs))
    configure_logging(Settings(log_level='debug'))
    assert calls[0]['level'] == 'DEBUG'
