# scan_app/metadata_resolver.py

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

import dateutil.parser
import diskcache
import platformdirs
import requests.exceptions as req_exceptions
from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed, retry_if_exception
from tmdbv3api import Episode, Movie, Search, TV
from tmdbv3api.exceptions import TMDbException

from .api_clients import get_tmdb_client
from .enums import MediaKind
from .exceptions import MetadataError, MetadataNotFoundError
from .models import EpisodeDetails, MatchCandidate, MovieDetails, SeriesDetails
from .utils import run_sync

log = logging.getLogger(__name__)

_CACHE_MISS = object()


class AsyncRateLimiter:
    def __init__(self, delay: float):
        self.delay = delay
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def wait(self):
        if self.delay <= 0: return
        async with self._lock:
            now = time.monotonic()
            since_last = now - self.last_call
            if since_last < self.delay:
                wait_time = self.delay - since_last
                log.debug(f"Rate limiting: sleeping for {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
            self.last_call = time.monotonic()


def _tmdb_status_code(exception: Exception) -> int:
    if hasattr(exception, 'args') and exception.args and isinstance(exception.args[0], dict):
        return exception.args[0].get('status_code', 0) or 0
    return 0

def is_not_found_error(exception: Exception) -> bool:
    """True when the API definitively reported the resource as missing."""
    if isinstance(exception, req_exceptions.HTTPError):
        return getattr(getattr(exception, 'response', None), 'status_code', 0) == 404
    if isinstance(exception, TMDbException):
        msg_lower = str(exception).lower()
        status_code = _tmdb_status_code(exception)
        return ("resource not found" in msg_lower or "could not be found" in msg_lower
                or status_code in (34, 404))
    return False

def should_retry_api_error(exception: Exception) -> bool:
    if isinstance(exception, (req_exceptions.ConnectionError, req_exceptions.Timeout)):
        log.debug(f"Retry check PASSED for Connection/Timeout Error: {type(exception).__name__}")
        return True
    if isinstance(exception, req_exceptions.HTTPError):
        status_code = getattr(getattr(exception, 'response', None), 'status_code', 0)
        if status_code == 429: log.warning("Retry check PASSED for HTTP 429 (Rate Limit)."); return True
        if 500 <= status_code <= 599: log.warning(f"Retry check PASSED for HTTP {status_code} (Server Error)."); return True
        if status_code in (401, 403): log.error(f"Retry check FAILED for HTTP {status_code} (Check API Key/Permissions)."); return False
        log.debug(f"Retry check FAILED for HTTP Status Code: {status_code}"); return False
    if isinstance(exception, TMDbException):
        msg_lower = str(exception).lower()
        status_code = _tmdb_status_code(exception)
        if "invalid api key" in msg_lower or status_code in (7, 401):
            log.error(f"Retry check FAILED for TMDbException (API Key/Auth Issue): {exception}"); return False
        if is_not_found_error(exception):
            log.debug(f"Retry check FAILED for TMDbException (Not Found): {exception}"); return False
        if status_code == 403:
            log.error(f"Retry check FAILED for TMDbException (Forbidden): {exception}"); return False
        log.warning(f"Retry check PASSED (tentative) for TMDbException: {exception} (status: {status_code})")
        return True
    log.debug(f"Retry check FAILED by default for: {type(exception).__name__}: {exception}")
    return False


def _field(obj: Any, key: str, default: Any = None) -> Any:
    """Reads a key from a dict or a tmdbv3api AsObj."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    getter = getattr(obj, 'get', None)
    if callable(getter):
        try:
            return getter(key, default)
        except TypeError:
            pass
    return getattr(obj, key, default)

def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None

def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None

def _genre_names(item: Any) -> List[str]:
    genres = _field(item, 'genres')
    if genres:
        return [str(_field(g, 'name')) for g in genres if _field(g, 'name')]
    # Search results only carry numeric ids
    return [str(g) for g in (_field(item, 'genre_ids') or [])]

def year_from_date(date_str: Optional[str]) -> Optional[int]:
    if not date_str: return None
    try:
        if len(date_str) == 4 and date_str.isdigit(): return int(date_str)
        return dateutil.parser.parse(date_str).year
    except (ValueError, OverflowError):
        return None

def _results_list(results: Any) -> List[Any]:
    if not results:
        return []
    inner = _field(results, 'results')
    if inner is not None and not isinstance(results, list):
        results = inner
    try:
        return [r for r in results if r]
    except TypeError:
        log.warning(f"Cannot iterate over TMDB results object (type {type(results)}).")
        return []


def movie_candidate(item: Any) -> Optional[MatchCandidate]:
    external_id = _as_int(_field(item, 'id'))
    name = _field(item, 'title') or _field(item, 'name')
    if external_id is None or not name:
        log.debug(f"Skipping TMDB movie result due to missing id or title: {external_id}")
        return None
    return MatchCandidate(
        external_id=external_id, name=str(name), media_kind=MediaKind.MOVIE,
        overview=_field(item, 'overview'), poster_path=_field(item, 'poster_path'),
        backdrop_path=_field(item, 'backdrop_path'), genres=_genre_names(item),
        release_date=_field(item, 'release_date') or None, runtime=_as_int(_field(item, 'runtime')),
        rating=_as_float(_field(item, 'vote_average')),
    )

def series_candidate(item: Any) -> Optional[MatchCandidate]:
    external_id = _as_int(_field(item, 'id'))
    name = _field(item, 'name') or _field(item, 'original_name')
    if external_id is None or not name:
        log.debug(f"Skipping TMDB series result due to missing id or name: {external_id}")
        return None
    return MatchCandidate(
        external_id=external_id, name=str(name), media_kind=MediaKind.SERIES,
        overview=_field(item, 'overview'), poster_path=_field(item, 'poster_path'),
        backdrop_path=_field(item, 'backdrop_path'), genres=_genre_names(item),
        first_air_date=_field(item, 'first_air_date') or None,
        last_air_date=_field(item, 'last_air_date') or None, status=_field(item, 'status'),
    )


class MetadataResolver:
    """
    Async facade over TMDB search and detail lookups.

    Blocking tmdbv3api calls run in the default executor behind a rate
    limiter and tenacity retries for transient failures. Successful results
    are cached on disk. Empty searches and not-found answers are never
    cached, so titles added upstream later are picked up by the next scan.
    """

    def __init__(self, cfg_helper, tmdb_client: Optional[Any] = None):
        self.cfg = cfg_helper
        self.tmdb = tmdb_client if tmdb_client is not None else get_tmdb_client()
        self.language = str(self.cfg('tmdb_language', 'en'))
        self.rate_limiter = AsyncRateLimiter(float(self.cfg('api_rate_limit_delay', 0.25)))
        self.max_attempts = max(1, int(self.cfg('api_retry_attempts', 3)))
        self.wait_seconds = float(self.cfg('api_retry_wait_seconds', 2.0))

        self.cache: Optional[diskcache.Cache] = None
        self.cache_enabled = bool(self.cfg('cache_enabled', True))
        self.cache_expire = int(self.cfg('cache_expire_seconds', 60 * 60 * 24 * 7))
        if self.cache_enabled:
            cache_dir_config = self.cfg('cache_directory', None)
            if cache_dir_config:
                cache_dir_path = Path(str(cache_dir_config)).expanduser().resolve()
            else:
                cache_dir_path = Path(platformdirs.user_cache_dir("scan_app", "scan_app"))
            try:
                cache_dir_path.mkdir(parents=True, exist_ok=True)
                self.cache = diskcache.Cache(str(cache_dir_path))
                log.info(f"Persistent cache initialized at: {cache_dir_path} (Expiration: {self.cache_expire}s)")
            except (OSError, diskcache.Timeout) as e:
                log.error(f"Failed to initialize disk cache at '{cache_dir_path}': {e}. Disabling cache.")
                self.cache = None
                self.cache_enabled = False
        else:
            log.info("Persistent caching disabled by configuration.")

    def close(self):
        if self.cache is not None:
            self.cache.close()
            self.cache = None

    # --- Cache ---

    async def _get_cache(self, key: str) -> Any:
        if not self.cache_enabled or self.cache is None: return _CACHE_MISS
        try:
            value = await run_sync(self.cache.get, key, default=_CACHE_MISS)
        except Exception as e:
            log.warning(f"Error getting from cache key '{key}': {e}")
            return _CACHE_MISS
        log.debug(f"Cache {'MISS' if value is _CACHE_MISS else 'HIT'} for key: {key}")
        return value

    async def _set_cache(self, key: str, value: Any):
        if not self.cache_enabled or self.cache is None: return
        try:
            await run_sync(self.cache.set, key, value, expire=self.cache_expire)
            log.debug(f"Cache SET for key: {key}")
        except Exception as e:
            log.warning(f"Error setting cache key '{key}': {e}")

    # --- Core call path ---

    async def _call(self, description: str, cache_key: str, func: Callable[..., Any], *args) -> Any:
        cached = await self._get_cache(cache_key)
        if cached is not _CACHE_MISS:
            return cached
        if not self.tmdb:
            raise MetadataError("TMDB client not available. Set TMDB_API_KEY.")

        await self.rate_limiter.wait()
        retryer = AsyncRetrying(stop=stop_after_attempt(self.max_attempts), wait=wait_fixed(self.wait_seconds),
                                retry=retry_if_exception(should_retry_api_error), reraise=True)
        try:
            result = await retryer(run_sync, func, *args)
        except MetadataError:
            raise
        except Exception as e:
            if is_not_found_error(e):
                log.debug(f"TMDB reported not found for {description}: {e}")
                raise MetadataNotFoundError(f"Not found: {description}") from e
            log.error(f"TMDB request failed for {description}: {type(e).__name__}: {e}")
            message = f"Failed to fetch TMDB metadata ({description})."
            if isinstance(e, (req_exceptions.ConnectionError, req_exceptions.Timeout)): message += " Check network connection."
            raise MetadataError(message) from e

        if result == []:
            log.debug(f"Not caching empty result for {description}")
        else:
            await self._set_cache(cache_key, result)
        return result

    # --- Sync workers (executor thread) ---

    def _sync_search_movie(self, title: str, year: Optional[int]) -> List[MatchCandidate]:
        try:
            results = Search().movies(title, year=year) if year else Search().movies(title)
        except TMDbException as e:
            if is_not_found_error(e):
                return []
            raise
        return [c for c in (movie_candidate(r) for r in _results_list(results)) if c]

    def _sync_search_series(self, name: str) -> List[MatchCandidate]:
        try:
            results = Search().tv_shows(name)
        except TMDbException as e:
            if is_not_found_error(e):
                return []
            raise
        return [c for c in (series_candidate(r) for r in _results_list(results)) if c]

    def _sync_movie_details(self, external_id: int) -> MovieDetails:
        item = Movie().details(external_id)
        release_date = _field(item, 'release_date') or None
        return MovieDetails(
            external_id=int(_field(item, 'id', external_id)), title=str(_field(item, 'title') or ''),
            overview=_field(item, 'overview'), release_date=release_date, year=year_from_date(release_date),
            poster_path=_field(item, 'poster_path'), backdrop_path=_field(item, 'backdrop_path'),
            genres=_genre_names(item), runtime=_as_int(_field(item, 'runtime')),
            rating=_as_float(_field(item, 'vote_average')),
        )

    def _sync_series_details(self, external_id: int) -> SeriesDetails:
        item = TV().details(external_id)
        return SeriesDetails(
            external_id=int(_field(item, 'id', external_id)), title=str(_field(item, 'name') or ''),
            overview=_field(item, 'overview'), poster_path=_field(item, 'poster_path'),
            backdrop_path=_field(item, 'backdrop_path'), genres=_genre_names(item),
            first_air_date=_field(item, 'first_air_date') or None,
            last_air_date=_field(item, 'last_air_date') or None, status=_field(item, 'status'),
        )

    def _sync_episode_details(self, series_id: int, season: int, episode: int) -> EpisodeDetails:
        item = Episode().details(series_id, season, episode)
        return EpisodeDetails(
            external_id=int(_field(item, 'id')), title=str(_field(item, 'name') or f"Episode {episode}"),
            season_number=_as_int(_field(item, 'season_number')) or season,
            episode_number=_as_int(_field(item, 'episode_number')) or episode,
            overview=_field(item, 'overview'), air_date=_field(item, 'air_date') or None,
        )

    # --- Public API ---

    async def search_movie(self, title: str, year: Optional[int] = None) -> List[MatchCandidate]:
        log.debug(f"Searching TMDB movies for '{title}' (year: {year})")
        return await self._call(f"movie search '{title}' ({year})", f"movie_search::{self.language}::{title.lower()}::{year}",
                                self._sync_search_movie, title, year)

    async def get_movie_details(self, external_id: int) -> MovieDetails:
        return await self._call(f"movie {external_id}", f"movie::{self.language}::{external_id}",
                                self._sync_movie_details, external_id)

    async def search_series(self, name: str) -> List[MatchCandidate]:
        log.debug(f"Searching TMDB series for '{name}'")
        return await self._call(f"series search '{name}'", f"series_search::{self.language}::{name.lower()}",
                                self._sync_search_series, name)

    async def get_series_details(self, external_id: int) -> SeriesDetails:
        return await self._call(f"series {external_id}", f"series::{self.language}::{external_id}",
                                self._sync_series_details, external_id)

    async def get_episode_details(self, series_external_id: int, season: int, episode: int) -> EpisodeDetails:
        """Raises MetadataNotFoundError when the series exists but the episode does not."""
        return await self._call(f"episode S{season:02d}E{episode:02d} of series {series_external_id}",
                                f"episode::{self.language}::{series_external_id}::{season}::{episode}",
                                self._sync_episode_details, series_external_id, season, episode)
