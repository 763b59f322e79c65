# tests/test_api_clients.py
import pytest
from unittest.mock import MagicMock

import scan_app.api_clients as api_clients


@pytest.fixture
def mock_cfg_helper():
    """cfg_helper stand-in: callable for settings, get_api_key for secrets."""
    mock = MagicMock()
    mock.get_api_key.return_value = None
    mock.side_effect = lambda key, default=None: {'tmdb_language': 'en'}.get(key, default)
    return mock

@pytest.fixture
def mock_tmdb(mocker):
    mock_instance = MagicMock(name="TMDbInstance")
    mock_class = mocker.patch('scan_app.api_clients.TMDb', return_value=mock_instance)
    return mock_class, mock_instance

@pytest.fixture(autouse=True)
def reset_api_clients_state():
    api_clients.reset_api_clients()
    yield
    api_clients.reset_api_clients()


def test_initialize_with_key(mocker, mock_cfg_helper, mock_tmdb):
    mock_log = mocker.patch('scan_app.api_clients.log')
    mock_class, mock_instance = mock_tmdb
    mock_cfg_helper.get_api_key.side_effect = lambda k: {'tmdb': 'tmdb-key'}.get(k)
    mock_cfg_helper.side_effect = lambda key, default=None: {'tmdb_language': 'fr'}.get(key, default)

    assert api_clients.initialize_api_clients(mock_cfg_helper) is True

    mock_class.assert_called_once_with()
    assert mock_instance.api_key == 'tmdb-key'
    assert mock_instance.language == 'fr'
    assert api_clients.get_tmdb_client() is mock_instance
    mock_log.info.assert_any_call("TMDB API Client initialized (Lang: fr).")

def test_initialize_without_key(mocker, mock_cfg_helper, mock_tmdb):
    mock_log = mocker.patch('scan_app.api_clients.log')
    mock_class, _ = mock_tmdb

    assert api_clients.initialize_api_clients(mock_cfg_helper) is False

    mock_class.assert_not_called()
    assert api_clients.get_tmdb_client() is None
    mock_log.warning.assert_called_once()

def test_initialize_client_failure(mocker, mock_cfg_helper, mock_tmdb):
    mock_log = mocker.patch('scan_app.api_clients.log')
    mock_class, _ = mock_tmdb
    mock_class.side_effect = Exception("TMDB Init Failed")
    mock_cfg_helper.get_api_key.side_effect = lambda k: 'tmdb-key'

    assert api_clients.initialize_api_clients(mock_cfg_helper) is False
    assert api_clients.get_tmdb_client() is None
    mock_log.error.assert_called_once_with("Failed to init TMDB Client: TMDB Init Failed")

def test_initialize_only_once(mock_cfg_helper, mock_tmdb):
    mock_class, _ = mock_tmdb
    mock_cfg_helper.get_api_key.side_effect = lambda k: 'tmdb-key'
    api_clients.initialize_api_clients(mock_cfg_helper)
    api_clients.initialize_api_clients(mock_cfg_helper)
    assert mock_class.call_count == 1

def test_get_client_before_initialization(mocker):
    mock_log = mocker.patch('scan_app.api_clients.log')
    assert api_clients.get_tmdb_client() is None
    mock_log.warning.assert_called_once_with("Attempted to get TMDB client before initialization.")
