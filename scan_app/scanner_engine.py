# scan_app/scanner_engine.py

import logging
import os
from collections import Counter, OrderedDict
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from .conflict_manager import ConflictManager
from .enums import MediaKind, ScanOutcome
from .exceptions import (
    DirectoryScanError, FatalScanError, MetadataNotFoundError, ScanInProgressError, ScannerError,
)
from .filename_parser import (
    clean_series_name_for_search, extract_series_name_from_folder, parse_episode, parse_movie,
)
from .indexer import MediaIndexer
from .models import MatchCandidate, ParsedEpisodeFile, ParsedMovieFile, ScanConfig, ScanSummary
from .progress import ProgressCallback, ProgressReporter
from .utils import enumerate_media_files, file_exists_on_disk, normalize_extensions, run_sync

log = logging.getLogger(__name__)

FOLDER_PHASE_END = 70


class ScannerEngine:
    """
    Reconciles the configured media folders with the catalog.

    Files are processed one at a time. A failure on one file is logged and
    the scan moves on; a folder that cannot be read becomes a warning. Only
    errors escaping those guards end the scan, as FatalScanError.
    """

    def __init__(self, store, resolver,
                 extensions: Optional[Iterable[str]] = None,
                 ignore_dirs: Optional[Iterable[str]] = None,
                 ignore_patterns: Optional[Iterable[str]] = None,
                 follow_symlinks: bool = False,
                 conflict_manager: Optional[ConflictManager] = None):
        self.store = store
        self.resolver = resolver
        self.extensions = sorted(normalize_extensions(extensions))
        self.ignore_dirs = list(ignore_dirs or [])
        self.ignore_patterns = list(ignore_patterns or [])
        self.follow_symlinks = follow_symlinks
        self.indexer = MediaIndexer(store, resolver)
        self.conflicts = conflict_manager or ConflictManager(store, self.indexer)
        self._scan_running = False

    @property
    def is_scanning(self) -> bool:
        return self._scan_running

    # --- Entry points ---

    async def run_full_scan(self, progress_callback: Optional[ProgressCallback] = None) -> ScanSummary:
        """Scans every active folder from the catalog."""
        folders = await run_sync(self.store.list_folders, True)
        config = ScanConfig(
            movie_paths=[f.path for f in folders if f.media_kind == MediaKind.MOVIE],
            series_paths=[f.path for f in folders if f.media_kind == MediaKind.SERIES],
            file_extensions=list(self.extensions),
        )
        log.info(f"Starting full scan: {len(config.movie_paths)} movie folder(s), {len(config.series_paths)} series folder(s).")
        return await self.scan_all(config, progress_callback)

    async def scan_all(self, config: ScanConfig, progress_callback: Optional[ProgressCallback] = None) -> ScanSummary:
        """
        Raises:
            ScanInProgressError: another scan on this engine has not finished.
            FatalScanError: an unexpected error escaped the per-file and per-folder guards.
        """
        if self._scan_running:
            raise ScanInProgressError("A media scan is already running")
        self._scan_running = True
        try:
            return await self._scan_all(config, ProgressReporter(progress_callback))
        except FatalScanError:
            raise
        except Exception as e:
            log.exception(f"Media scan aborted: {type(e).__name__}: {e}")
            raise FatalScanError(f"Media scan aborted: {e}") from e
        finally:
            self._scan_running = False

    async def _scan_all(self, config: ScanConfig, reporter: ProgressReporter) -> ScanSummary:
        reporter.emit("Starting media scan", 0)
        stats: Counter = Counter()
        extensions = config.file_extensions or self.extensions
        folders = [(p, MediaKind.MOVIE) for p in config.movie_paths] + [(p, MediaKind.SERIES) for p in config.series_paths]
        total = len(folders)

        for completed, (path, kind) in enumerate(folders):
            label = "movie" if kind == MediaKind.MOVIE else "TV series"
            reporter.emit(f"Scanning {label} directory", completed * FOLDER_PHASE_END // total,
                          {"path": path, "current": completed + 1, "total": total})
            try:
                if kind == MediaKind.MOVIE:
                    await self.scan_movie_directory(path, extensions, stats)
                else:
                    await self.scan_series_directory(path, extensions, stats)
            except (DirectoryScanError, OSError) as e:
                log.warning(f"Skipping {label} folder '{path}': {e}")
                stats["FOLDER_FAILED"] += 1

        if total:
            reporter.emit("Finished scanning directories", FOLDER_PHASE_END)

        summary = await self.cleanup_orphaned_entries(reporter)
        reporter.emit("Cleaning up resolved conflicts", 95)
        await self.conflicts.delete_all_resolved()

        summary.outcomes = dict(sorted(stats.items()))
        log.info(f"Scan summary: removed {summary.removed_movies} movie(s), {summary.removed_episodes} episode(s), "
                 f"{summary.removed_series} series; outcomes {summary.outcomes}")
        reporter.emit("Media scan and cleanup completed", 100, summary.to_dict())
        return summary

    # --- Per-file guard ---

    async def _guarded(self, func: Callable[..., Awaitable[ScanOutcome]], file_path: str, *args) -> ScanOutcome:
        try:
            outcome = await func(file_path, *args)
        except ScannerError as e:
            log.error(f"Failed to process '{file_path}': {e}")
            return ScanOutcome.FAILED
        except Exception:
            log.exception(f"Unexpected error processing '{file_path}'")
            return ScanOutcome.FAILED
        log.debug(f"{outcome}: {file_path}")
        return outcome

    # --- Movies ---

    async def scan_movie_directory(self, path: str, extensions: Optional[Iterable[str]] = None,
                                   stats: Optional[Counter] = None) -> Counter:
        stats = stats if stats is not None else Counter()
        files = await run_sync(enumerate_media_files, path, extensions or self.extensions,
                               self.ignore_dirs, self.ignore_patterns, self.follow_symlinks)
        log.info(f"Found {len(files)} movie file(s) in '{path}'.")
        for file_path in files:
            outcome = await self._guarded(self.process_movie_file, file_path)
            stats[outcome.name] += 1
        return stats

    async def _find_existing_movie(self, parsed: ParsedMovieFile):
        existing = await run_sync(self.store.find_movie_by_path, parsed.file_path)
        if existing is None:
            existing = await run_sync(self.store.find_movie_by_file_name, parsed.file_name)
        if existing is None:
            existing = await run_sync(self.store.find_movie_by_title, parsed.title, parsed.year)
        return existing

    async def process_movie_file(self, file_path: str) -> ScanOutcome:
        parsed = parse_movie(file_path)
        if parsed is None:
            await self.conflicts.record_conflict(MediaKind.MOVIE, os.path.basename(file_path), file_path, [])
            return ScanOutcome.PARSE_FAILED

        if await self._find_existing_movie(parsed) is not None:
            return ScanOutcome.ALREADY_INDEXED

        candidates = await self.resolver.search_movie(parsed.title, parsed.year)
        if not candidates:
            log.info(f"No TMDB match for movie '{parsed.title}' ({parsed.year}).")
            await self.conflicts.record_conflict(MediaKind.MOVIE, parsed.file_name, file_path, [])
            return ScanOutcome.CONFLICT_NO_MATCH
        if len(candidates) > 1:
            log.info(f"{len(candidates)} TMDB matches for movie '{parsed.title}' ({parsed.year}).")
            await self.conflicts.record_conflict(MediaKind.MOVIE, parsed.file_name, file_path, candidates, title=parsed.title)
            return ScanOutcome.CONFLICT_AMBIGUOUS

        _, created = await self.indexer.index_movie(parsed, candidates[0].external_id)
        return ScanOutcome.INDEXED if created else ScanOutcome.UPDATED

    # --- Series ---

    async def scan_series_directory(self, path: str, extensions: Optional[Iterable[str]] = None,
                                    stats: Optional[Counter] = None) -> Counter:
        stats = stats if stats is not None else Counter()
        files = await run_sync(enumerate_media_files, path, extensions or self.extensions,
                               self.ignore_dirs, self.ignore_patterns, self.follow_symlinks)
        log.info(f"Found {len(files)} episode file(s) in '{path}'.")
        unparsed: Dict[str, List[str]] = OrderedDict()
        for file_path in files:
            outcome = await self._guarded(self.process_episode_file, file_path, unparsed)
            stats[outcome.name] += 1

        for folder_path, folder_files in unparsed.items():
            outcome = await self._guarded(self._record_grouped_conflict, folder_path, folder_files)
            stats[outcome.name] += 1
        return stats

    async def _find_existing_episode(self, parsed: ParsedEpisodeFile):
        existing = await run_sync(self.store.find_episode_by_path, parsed.file_path)
        if existing is None:
            existing = await run_sync(self.store.find_episode_by_file_name, parsed.file_name)
        if existing is None:
            existing = await run_sync(self.store.find_episode_by_series_title, parsed.series_name,
                                      parsed.effective_season, parsed.episode_number)
        return existing

    async def process_episode_file(self, file_path: str, unparsed: Optional[Dict[str, List[str]]] = None) -> ScanOutcome:
        """
        Unparseable files are appended to `unparsed` under their parent
        directory; the caller turns each directory into one grouped conflict.
        """
        parsed = parse_episode(file_path)
        if parsed is None:
            if unparsed is None:
                await self.conflicts.record_conflict(MediaKind.SERIES, os.path.basename(file_path), file_path, [])
                return ScanOutcome.PARSE_FAILED
            unparsed.setdefault(os.path.dirname(file_path), []).append(file_path)
            return ScanOutcome.DEFERRED

        if await self._find_existing_episode(parsed) is not None:
            return ScanOutcome.ALREADY_INDEXED

        candidates = await self.resolver.search_series(parsed.series_name)
        if not candidates:
            log.info(f"No TMDB match for series '{parsed.series_name}'.")
            await self.conflicts.record_conflict(MediaKind.SERIES, parsed.file_name, file_path, [])
            return ScanOutcome.CONFLICT_NO_MATCH
        if len(candidates) > 1:
            log.info(f"{len(candidates)} TMDB matches for series '{parsed.series_name}'.")
            await self.conflicts.record_conflict(MediaKind.SERIES, parsed.file_name, file_path, candidates,
                                                 title=parsed.series_name)
            return ScanOutcome.CONFLICT_AMBIGUOUS

        try:
            _, created = await self.indexer.index_episode(parsed, candidates[0].external_id)
        except MetadataNotFoundError as e:
            log.info(f"'{parsed.series_name}' S{parsed.effective_season:02d}E{parsed.episode_number:02d} not found upstream: {e}")
            await self.conflicts.record_conflict(MediaKind.SERIES, parsed.file_name, file_path, [])
            return ScanOutcome.CONFLICT_EPISODE_NOT_FOUND
        return ScanOutcome.INDEXED if created else ScanOutcome.UPDATED

    async def _search_series_for_folder(self, folder_name: str, name: str) -> List[MatchCandidate]:
        if not name:
            return []
        try:
            return await self.resolver.search_series(name)
        except ScannerError as e:
            log.warning(f"Series search '{name}' for folder '{folder_name}' failed: {e}")
        except Exception:
            log.exception(f"Unexpected error searching series '{name}' for folder '{folder_name}'")
        return []

    async def _record_grouped_conflict(self, folder_path: str, files: List[str]) -> ScanOutcome:
        """The conflict is written even when both searches fail; it is the manual-attention flag."""
        folder_name = os.path.basename(folder_path.rstrip(os.sep)) or folder_path
        series_name = extract_series_name_from_folder(folder_name)
        candidates = await self._search_series_for_folder(folder_name, series_name)
        if not candidates:
            cleaned = clean_series_name_for_search(series_name)
            if cleaned and cleaned != series_name:
                log.debug(f"Retrying series search for folder '{folder_name}' as '{cleaned}'.")
                candidates = await self._search_series_for_folder(folder_name, cleaned)

        display_name = f"{folder_name} ({len(files)} episodes)"
        await self.conflicts.record_conflict(MediaKind.SERIES, display_name, files[0], candidates, title=series_name)
        return ScanOutcome.CONFLICT_AMBIGUOUS if candidates else ScanOutcome.CONFLICT_NO_MATCH

    # --- Orphan cleanup ---

    async def _confirmed_missing(self, file_path: str) -> bool:
        return not await run_sync(file_exists_on_disk, file_path)

    async def cleanup_orphaned_entries(self, reporter: Optional[ProgressReporter] = None) -> ScanSummary:
        """
        Deletes movies and episodes whose file is gone, then series left
        without episodes. Each candidate is checked again right before its
        delete, so a file that reappeared mid-scan keeps its record.
        """
        reporter = reporter or ProgressReporter()
        summary = ScanSummary()
        reporter.emit("Checking for orphaned media entries", 75)

        reporter.emit("Checking for deleted movies", 80)
        movies = await run_sync(self.store.list_movies)
        missing_movies = [m for m in movies if await self._confirmed_missing(m.file_path)]
        for i, movie in enumerate(missing_movies):
            reporter.emit("Removing orphaned movies", 80 + i * 5 // len(missing_movies),
                          {"current": i + 1, "total": len(missing_movies), "title": movie.title})
            try:
                if not await self._confirmed_missing(movie.file_path):
                    log.info(f"File for movie '{movie.title}' reappeared, keeping it: {movie.file_path}")
                    continue
                if await run_sync(self.store.delete_movie, movie.id):
                    summary.removed_movies += 1
                    log.info(f"Removed orphaned movie '{movie.title}' ({movie.file_path}).")
            except ScannerError as e:
                log.error(f"Failed to remove orphaned movie {movie.id} ('{movie.file_path}'): {e}")

        reporter.emit("Checking for deleted episodes", 85)
        episodes = await run_sync(self.store.list_episodes)
        missing_episodes = [e for e in episodes if await self._confirmed_missing(e.file_path)]
        for i, episode in enumerate(missing_episodes):
            reporter.emit("Removing orphaned episodes", 85 + i * 5 // len(missing_episodes),
                          {"current": i + 1, "total": len(missing_episodes), "file": episode.file_name})
            try:
                if not await self._confirmed_missing(episode.file_path):
                    log.info(f"Episode file reappeared, keeping it: {episode.file_path}")
                    continue
                if await run_sync(self.store.delete_episode, episode.id):
                    summary.removed_episodes += 1
                    log.info(f"Removed orphaned episode S{episode.season_number:02d}E{episode.episode_number:02d} ({episode.file_path}).")
            except ScannerError as e:
                log.error(f"Failed to remove orphaned episode {episode.id} ('{episode.file_path}'): {e}")

        reporter.emit("Checking for empty TV series", 90)
        empty_series = await run_sync(self.store.list_empty_series)
        for i, series in enumerate(empty_series):
            reporter.emit("Removing empty TV series", 90 + i * 5 // len(empty_series),
                          {"current": i + 1, "total": len(empty_series), "title": series.title})
            try:
                if await run_sync(self.store.delete_series, series.id, True):
                    summary.removed_series += 1
                    log.info(f"Removed TV series '{series.title}' (no episodes left).")
            except ScannerError as e:
                log.error(f"Failed to remove empty series {series.id} ('{series.title}'): {e}")

        reporter.emit("Cleanup completed", 95, {
            "removed_movies": summary.removed_movies,
            "removed_episodes": summary.removed_episodes,
            "removed_series": summary.removed_series,
        })
        return summary
