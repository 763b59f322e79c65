# scan_app/conflict_manager.py

import logging
from typing import List, Optional

from thefuzz import fuzz

from .enums import MediaKind
from .filename_parser import parse_episode, parse_movie
from .models import MatchCandidate, ScanningConflict
from .utils import run_sync

log = logging.getLogger(__name__)


def rank_candidates(title: Optional[str], candidates: List[MatchCandidate]) -> List[MatchCandidate]:
    """Orders candidates by descending similarity to title. Ties keep the API order."""
    if not title or len(candidates) < 2:
        return list(candidates)
    query = title.lower()
    return sorted(candidates, key=lambda c: -fuzz.token_sort_ratio(query, c.name.lower()))


class ConflictManager:
    def __init__(self, store, indexer):
        self.store = store
        self.indexer = indexer

    async def record_conflict(self, media_kind: MediaKind, file_name: str, file_path: str,
                              candidates: List[MatchCandidate], title: Optional[str] = None) -> ScanningConflict:
        """
        Upsert by file_path. An existing row is refreshed and re-opened; an
        unresolved row that already holds the same name and candidates is
        left alone so unchanged rescans write nothing.
        """
        ranked = rank_candidates(title, candidates)
        existing = await run_sync(self.store.find_conflict_by_path, file_path)
        if (existing is not None and not existing.resolved and existing.file_name == file_name
                and existing.media_kind == media_kind and existing.possible_matches == ranked):
            log.debug(f"Conflict for '{file_path}' unchanged (id {existing.id}).")
            return existing

        conflict, created = await run_sync(self.store.upsert_conflict, media_kind, file_name, file_path, ranked)
        verb = "Created" if created else "Refreshed"
        log.warning(f"{verb} {media_kind} conflict for '{file_name}' with {len(ranked)} candidate(s) (id {conflict.id}).")
        return conflict

    async def resolve_conflict(self, conflict_id: int, selected_external_id: int) -> ScanningConflict:
        """
        Indexes the file against the chosen external id, then marks the
        conflict resolved.

        Raises:
            ConflictNotFoundError: unknown conflict id.
            MetadataError: the selected id could not be fetched; the conflict stays open.
        """
        conflict = await run_sync(self.store.get_conflict, conflict_id)
        if conflict.media_kind == MediaKind.MOVIE:
            parsed_movie = parse_movie(conflict.file_path)
            if parsed_movie:
                await self.indexer.index_movie(parsed_movie, selected_external_id)
            else:
                log.warning(f"Conflict {conflict_id}: '{conflict.file_path}' cannot be parsed; marking resolved without indexing.")
        else:
            parsed_episode = parse_episode(conflict.file_path)
            if parsed_episode:
                await self.indexer.index_episode(parsed_episode, selected_external_id)
            else:
                log.warning(f"Conflict {conflict_id}: '{conflict.file_path}' cannot be parsed; marking resolved without indexing.")

        resolved = await run_sync(self.store.mark_conflict_resolved, conflict_id, selected_external_id)
        log.info(f"Conflict {conflict_id} resolved with TMDB id {selected_external_id}.")
        return resolved

    async def delete_conflict(self, conflict_id: int) -> str:
        await run_sync(self.store.delete_conflict, conflict_id)
        log.info(f"Deleted conflict {conflict_id}.")
        return "Conflict deleted successfully"

    async def delete_all_unresolved(self) -> int:
        count = await run_sync(self.store.delete_conflicts, False)
        log.info(f"Deleted {count} unresolved conflict(s).")
        return count

    async def delete_all_resolved(self) -> int:
        count = await run_sync(self.store.delete_conflicts, True)
        if count:
            log.info(f"Purged {count} resolved conflict(s).")
        return count

    async def list_conflicts(self, resolved: Optional[bool] = False) -> List[ScanningConflict]:
        return await run_sync(self.store.list_conflicts, resolved)
