# scan_app/indexer.py
import logging
from typing import Tuple

from .models import (
    EpisodeRecord, MovieRecord, ParsedEpisodeFile, ParsedMovieFile,
    build_episode_record, build_movie_record, build_series_record,
)
from .utils import run_sync

log = logging.getLogger(__name__)


class MediaIndexer:
    """
    Turns a parsed file plus a chosen external id into catalog records.
    Shared by the scanner (single confident match) and by conflict
    resolution (human pick), so both paths upsert identically.
    """

    def __init__(self, store, resolver):
        self.store = store
        self.resolver = resolver

    async def index_movie(self, parsed: ParsedMovieFile, external_id: int) -> Tuple[MovieRecord, bool]:
        details = await self.resolver.get_movie_details(external_id)
        record, created = await run_sync(self.store.upsert_movie, build_movie_record(parsed, details))
        if created:
            log.info(f"Indexed movie '{record.title}' ({record.year}) -> {parsed.file_path}")
        else:
            log.info(f"Updated file binding for movie '{record.title}' -> {parsed.file_path}")
        return record, created

    async def index_episode(self, parsed: ParsedEpisodeFile, series_external_id: int) -> Tuple[EpisodeRecord, bool]:
        """
        Fetches series then episode details before writing anything, so an
        episode that does not exist upstream (MetadataNotFoundError) leaves
        the catalog untouched.
        """
        season = parsed.effective_season
        series_details = await self.resolver.get_series_details(series_external_id)
        episode_details = await self.resolver.get_episode_details(series_external_id, season, parsed.episode_number)

        previous = await run_sync(self.store.find_episode_by_key, episode_details.external_id,
                                  episode_details.season_number, episode_details.episode_number)
        if previous is not None and previous.file_path != parsed.file_path:
            log.info(f"Episode {episode_details.external_id} moved: {previous.file_path} -> {parsed.file_path}")

        series, series_created = await run_sync(self.store.upsert_series, build_series_record(series_details))
        if series_created:
            log.info(f"Created series '{series.title}' (TMDB {series.external_id}).")
        record, created = await run_sync(self.store.create_or_update_episode,
                                         build_episode_record(parsed, series.id, episode_details))
        action = "Indexed" if created else "Updated file binding for"
        log.info(f"{action} episode '{series.title}' S{record.season_number:02d}E{record.episode_number:02d} -> {parsed.file_path}")
        return record, created
