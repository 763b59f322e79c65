# tests/conftest.py
import pytest
from pathlib import Path
from unittest.mock import MagicMock
import sys
import argparse

# Ensure the app package is findable by pytest by adding the project root to the path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from scan_app.catalog_store import CatalogStore
from scan_app.exceptions import MetadataNotFoundError
from scan_app.models import EpisodeDetails, MovieDetails, SeriesDetails
from scan_app.scanner_engine import ScannerEngine


# --- Mock Config Fixture ---
@pytest.fixture
def mock_cfg_helper(mocker):
    mock_args = argparse.Namespace(profile='default')
    mock_config_manager = MagicMock()
    class MockConfigHelper:
        def __init__(self, manager, args): self.manager = manager; self.args = args; self.profile = getattr(args, 'profile', 'default') or 'default'
        def __call__(self, key, default_value=None, arg_value=None):
             if key in self.manager._mock_values: return self.manager._mock_values[key]
             return default_value
        def get_api_key(self, service_name): return self.manager._mock_apikeys.get(service_name)
        def get_list(self, key, default_value=None):
            val = self(key, default_value)
            if isinstance(val, str): return [i.strip() for i in val.split(',') if i.strip()]
            if isinstance(val, list): return val
            return default_value if isinstance(default_value, list) else []
    mock_config_manager._mock_values = {}
    mock_config_manager._mock_apikeys = {}
    helper = MockConfigHelper(mock_config_manager, mock_args)
    return helper


# --- Catalog ---
@pytest.fixture
def store(tmp_path: Path):
    return CatalogStore(str(tmp_path / "db" / "catalog.db"))


# --- Fake metadata resolver ---
class FakeResolver:
    """In-memory stand-in for MetadataResolver. Search results are keyed by lower-cased query."""

    def __init__(self):
        self.movie_results = {}
        self.series_results = {}
        self.movie_details = {}
        self.series_details = {}
        self.missing_episodes = set()
        self.failing_titles = set()
        self.gate = None
        self.calls = []

    async def search_movie(self, title, year=None):
        self.calls.append(("search_movie", title, year))
        if self.gate is not None:
            await self.gate.wait()
        if title.lower() in self.failing_titles:
            raise RuntimeError(f"resolver exploded on {title}")
        return list(self.movie_results.get(title.lower(), []))

    async def get_movie_details(self, external_id):
        self.calls.append(("get_movie_details", external_id))
        return self.movie_details.get(external_id) or MovieDetails(external_id=external_id, title=f"Movie {external_id}")

    async def search_series(self, name):
        self.calls.append(("search_series", name))
        if name.lower() in self.failing_titles:
            raise RuntimeError(f"resolver exploded on {name}")
        return list(self.series_results.get(name.lower(), []))

    async def get_series_details(self, external_id):
        self.calls.append(("get_series_details", external_id))
        return self.series_details.get(external_id) or SeriesDetails(external_id=external_id, title=f"Series {external_id}")

    async def get_episode_details(self, series_external_id, season, episode):
        self.calls.append(("get_episode_details", series_external_id, season, episode))
        if (series_external_id, season, episode) in self.missing_episodes:
            raise MetadataNotFoundError(f"Not found: S{season:02d}E{episode:02d}")
        return EpisodeDetails(external_id=series_external_id * 1000 + season * 100 + episode,
                              title=f"Episode {episode}", season_number=season, episode_number=episode)

    def close(self):
        pass

    def called(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def fake_resolver():
    return FakeResolver()

@pytest.fixture
def engine(store, fake_resolver):
    return ScannerEngine(store, fake_resolver)


# --- Media tree ---
@pytest.fixture
def media_root(tmp_path: Path):
    root = tmp_path / "media"
    root.mkdir()
    return root

@pytest.fixture
def make_media_file(media_root: Path):
    """Creates an empty file under the media root and returns its absolute path as str."""
    def _make(relative_path: str) -> str:
        path = media_root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch()
        return str(path.absolute())
    return _make
