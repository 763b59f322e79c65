# tests/test_metadata_resolver.py
import asyncio
import pytest
import requests
from requests import exceptions as req_exceptions
from tmdbv3api.exceptions import TMDbException

from scan_app import api_clients
from scan_app.enums import MediaKind
from scan_app.exceptions import MetadataError, MetadataNotFoundError
from scan_app.metadata_resolver import (
    MetadataResolver, is_not_found_error, should_retry_api_error, year_from_date,
)


def _http_error(status_code):
    response = requests.Response()
    response.status_code = status_code
    return req_exceptions.HTTPError(f"HTTP {status_code}", response=response)


@pytest.fixture
def resolver_cfg(mock_cfg_helper):
    mock_cfg_helper.manager._mock_values.update({
        'cache_enabled': False,
        'api_rate_limit_delay': 0.0,
        'api_retry_attempts': 3,
        'api_retry_wait_seconds': 0.0,
        'tmdb_language': 'en',
    })
    return mock_cfg_helper

@pytest.fixture
def resolver(resolver_cfg):
    instance = MetadataResolver(resolver_cfg, tmdb_client=object())
    yield instance
    instance.close()

@pytest.fixture
def mock_search(mocker):
    return mocker.patch("scan_app.metadata_resolver.Search")


# --- Error classification ---
@pytest.mark.parametrize("exc, expected", [
    (req_exceptions.ConnectionError("reset"), True),
    (req_exceptions.Timeout("slow"), True),
    (_http_error(429), True),
    (_http_error(503), True),
    (_http_error(401), False),
    (_http_error(404), False),
    (TMDbException("Invalid API key: You must be granted a valid key."), False),
    (TMDbException("The resource you requested could not be found."), False),
    (TMDbException("Something odd happened"), True),
    (ValueError("bad"), False),
])
def test_should_retry_api_error(exc, expected):
    assert should_retry_api_error(exc) is expected

@pytest.mark.parametrize("exc, expected", [
    (_http_error(404), True),
    (_http_error(500), False),
    (TMDbException("The resource you requested could not be found."), True),
    (TMDbException({"status_code": 34, "status_message": "gone"}), True),
    (TMDbException("Invalid API key"), False),
    (RuntimeError("not found"), False),
])
def test_is_not_found_error(exc, expected):
    assert is_not_found_error(exc) is expected

@pytest.mark.parametrize("value, expected", [
    ("2010-07-15", 2010), ("1982", 1982), ("", None), (None, None), ("not a date", None),
])
def test_year_from_date(value, expected):
    assert year_from_date(value) == expected


# --- Searches ---
def test_search_movie_maps_candidates(resolver, mock_search):
    mock_search.return_value.movies.return_value = [
        {"id": 27205, "title": "Inception", "release_date": "2010-07-15", "genre_ids": [28, 878],
         "vote_average": 8.4, "overview": "Dreams.", "poster_path": "/p.jpg"},
        {"id": None, "title": "Broken row"},
    ]

    candidates = asyncio.run(resolver.search_movie("Inception", 2010))

    mock_search.return_value.movies.assert_called_once_with("Inception", year=2010)
    assert len(candidates) == 1
    hit = candidates[0]
    assert (hit.external_id, hit.name, hit.media_kind) == (27205, "Inception", MediaKind.MOVIE)
    assert hit.rating == 8.4
    assert hit.genres == ["28", "878"]
    assert hit.release_date == "2010-07-15"

def test_search_movie_not_found_is_empty(resolver, mock_search):
    mock_search.return_value.movies.side_effect = TMDbException("The resource you requested could not be found.")
    assert asyncio.run(resolver.search_movie("Nope")) == []

def test_search_series_retries_transient_errors(resolver, mock_search):
    mock_search.return_value.tv_shows.side_effect = [
        req_exceptions.ConnectionError("reset"),
        [{"id": 1396, "name": "Breaking Bad", "first_air_date": "2008-01-20"}],
    ]

    candidates = asyncio.run(resolver.search_series("Breaking Bad"))

    assert mock_search.return_value.tv_shows.call_count == 2
    assert candidates[0].media_kind == MediaKind.SERIES
    assert candidates[0].first_air_date == "2008-01-20"

def test_search_series_gives_up_after_attempts(resolver, mock_search):
    mock_search.return_value.tv_shows.side_effect = req_exceptions.ConnectionError("down")
    with pytest.raises(MetadataError, match="Check network connection"):
        asyncio.run(resolver.search_series("Anything"))
    assert mock_search.return_value.tv_shows.call_count == 3

def test_auth_error_is_not_retried(resolver, mock_search):
    mock_search.return_value.movies.side_effect = _http_error(401)
    with pytest.raises(MetadataError) as exc_info:
        asyncio.run(resolver.search_movie("Inception"))
    assert not isinstance(exc_info.value, MetadataNotFoundError)
    assert mock_search.return_value.movies.call_count == 1


# --- Details ---
def test_get_movie_details(resolver, mocker):
    mock_movie = mocker.patch("scan_app.metadata_resolver.Movie")
    mock_movie.return_value.details.return_value = {
        "id": 27205, "title": "Inception", "release_date": "2010-07-15", "runtime": 148,
        "genres": [{"id": 28, "name": "Action"}], "vote_average": "8.4",
    }
    details = asyncio.run(resolver.get_movie_details(27205))
    assert details.title == "Inception"
    assert details.year == 2010
    assert details.runtime == 148
    assert details.genres == ["Action"]
    assert details.rating == 8.4

def test_get_movie_details_not_found(resolver, mocker):
    mock_movie = mocker.patch("scan_app.metadata_resolver.Movie")
    mock_movie.return_value.details.side_effect = TMDbException("The resource you requested could not be found.")
    with pytest.raises(MetadataNotFoundError):
        asyncio.run(resolver.get_movie_details(1))
    assert mock_movie.return_value.details.call_count == 1

def test_get_series_and_episode_details(resolver, mocker):
    mocker.patch("scan_app.metadata_resolver.TV").return_value.details.return_value = {
        "id": 1396, "name": "Breaking Bad", "status": "Ended", "last_air_date": "2013-09-29"}
    mock_episode = mocker.patch("scan_app.metadata_resolver.Episode")
    mock_episode.return_value.details.return_value = {
        "id": 62085, "name": "Cat's in the Bag...", "season_number": 1, "episode_number": 2, "air_date": "2008-01-27"}

    series = asyncio.run(resolver.get_series_details(1396))
    episode = asyncio.run(resolver.get_episode_details(1396, 1, 2))

    assert (series.title, series.status) == ("Breaking Bad", "Ended")
    mock_episode.return_value.details.assert_called_once_with(1396, 1, 2)
    assert (episode.external_id, episode.season_number, episode.episode_number) == (62085, 1, 2)

def test_missing_episode_raises_not_found(resolver, mocker):
    mock_episode = mocker.patch("scan_app.metadata_resolver.Episode")
    mock_episode.return_value.details.side_effect = _http_error(404)
    with pytest.raises(MetadataNotFoundError):
        asyncio.run(resolver.get_episode_details(1396, 9, 1))


# --- Client and cache ---
def test_missing_client_raises(resolver_cfg):
    api_clients.reset_api_clients()
    resolver = MetadataResolver(resolver_cfg)
    with pytest.raises(MetadataError, match="TMDB client not available"):
        asyncio.run(resolver.search_movie("Inception"))

def test_results_are_cached(resolver_cfg, mock_search, tmp_path):
    resolver_cfg.manager._mock_values.update({'cache_enabled': True, 'cache_directory': str(tmp_path / "cache")})
    resolver = MetadataResolver(resolver_cfg, tmdb_client=object())
    mock_search.return_value.movies.return_value = [{"id": 27205, "title": "Inception"}]
    try:
        first = asyncio.run(resolver.search_movie("Inception", 2010))
        second = asyncio.run(resolver.search_movie("inception", 2010))
    finally:
        resolver.close()
    assert first == second
    assert mock_search.return_value.movies.call_count == 1

def test_empty_search_results_are_not_cached(resolver_cfg, mock_search, tmp_path):
    resolver_cfg.manager._mock_values.update({'cache_enabled': True, 'cache_directory': str(tmp_path / "cache")})
    resolver = MetadataResolver(resolver_cfg, tmdb_client=object())
    mock_search.return_value.tv_shows.side_effect = [[], [{"id": 63639, "name": "The Expanse"}]]
    try:
        first = asyncio.run(resolver.search_series("The Expanse"))
        second = asyncio.run(resolver.search_series("The Expanse"))
    finally:
        resolver.close()
    assert first == []
    assert [c.external_id for c in second] == [63639]
    assert mock_search.return_value.tv_shows.call_count == 2
