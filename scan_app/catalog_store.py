# scan_app/catalog_store.py
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .enums import MediaKind, TranscodeStatus
from .exceptions import CatalogError, ConflictNotFoundError, EntityNotFoundError
from .models import (
    EpisodeRecord, FileAttributes, MatchCandidate, MediaFolder, MovieRecord,
    ScanningConflict, SeriesRecord,
)

log = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS media_folders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL UNIQUE,
    media_kind TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS movies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id INTEGER NOT NULL UNIQUE,
    title TEXT NOT NULL,
    year INTEGER,
    overview TEXT,
    poster_path TEXT,
    backdrop_path TEXT,
    genres TEXT NOT NULL DEFAULT '[]',
    runtime INTEGER,
    rating REAL,
    release_date TEXT,
    file_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    resolution TEXT, quality TEXT, rip TEXT, sound TEXT, provider TEXT,
    transcode_status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_movies_file_path ON movies (file_path);
CREATE INDEX IF NOT EXISTS idx_movies_file_name ON movies (file_name);
CREATE TABLE IF NOT EXISTS series (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id INTEGER NOT NULL UNIQUE,
    title TEXT NOT NULL,
    overview TEXT,
    poster_path TEXT,
    backdrop_path TEXT,
    genres TEXT NOT NULL DEFAULT '[]',
    first_air_date TEXT,
    last_air_date TEXT,
    status TEXT,
    transcode_status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS episodes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    series_id INTEGER NOT NULL REFERENCES series (id) ON DELETE CASCADE,
    external_id INTEGER NOT NULL,
    season_number INTEGER NOT NULL,
    episode_number INTEGER NOT NULL,
    title TEXT NOT NULL,
    overview TEXT,
    air_date TEXT,
    file_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    resolution TEXT, quality TEXT, rip TEXT, sound TEXT, provider TEXT,
    transcode_status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (external_id, season_number, episode_number)
);
CREATE INDEX IF NOT EXISTS idx_episodes_series ON episodes (series_id);
CREATE INDEX IF NOT EXISTS idx_episodes_file_path ON episodes (file_path);
CREATE TABLE IF NOT EXISTS scanning_conflicts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_name TEXT NOT NULL,
    file_path TEXT NOT NULL UNIQUE,
    media_kind TEXT NOT NULL,
    possible_matches TEXT NOT NULL DEFAULT '[]',
    resolved INTEGER NOT NULL DEFAULT 0,
    selected_id INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_BINDING_COLUMNS = ("file_path", "file_name", "resolution", "quality", "rip", "sound", "provider")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"

def _binding_values(file_path: str, file_name: str, attrs: FileAttributes) -> Tuple:
    return (file_path, file_name, attrs.resolution, attrs.quality, attrs.rip, attrs.sound, attrs.provider)

def _attrs_from_row(row: sqlite3.Row) -> FileAttributes:
    return FileAttributes(resolution=row["resolution"], quality=row["quality"], rip=row["rip"],
                          sound=row["sound"], provider=row["provider"])


class CatalogStore:
    """
    SQLite-backed catalog of folders, movies, series, episodes and conflicts.

    A fresh connection is opened per operation, so an instance may be shared
    between the event loop thread and executor threads.
    """

    def __init__(self, db_path: str):
        self.db_path = Path(db_path).expanduser().resolve()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CatalogError(f"Cannot create catalog directory '{self.db_path.parent}': {e}") from e
        self._init_db()
        log.debug(f"CatalogStore ready (DB: {self.db_path})")

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path, timeout=10.0)
            conn.row_factory = sqlite3.Row
            try: conn.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.Error as pe: log.warning(f"Could not set PRAGMA journal_mode=WAL for catalog DB ({self.db_path}): {pe}")
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.execute("PRAGMA foreign_keys=ON;")
            return conn
        except sqlite3.Error as e:
            raise CatalogError(f"Cannot connect to catalog database '{self.db_path}': {e}") from e

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commits on success, rolls back on any error. sqlite errors surface as CatalogError."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise CatalogError(f"Catalog operation failed: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as e:
            raise CatalogError(f"Catalog query failed: {e}") from e
        finally:
            conn.close()

    def _init_db(self):
        conn = self._connect()
        try:
            conn.executescript(_SCHEMA)
            conn.commit()
        except sqlite3.Error as e:
            raise CatalogError(f"Failed to initialize catalog schema in '{self.db_path}': {e}") from e
        finally:
            conn.close()

    # --- Row mapping ---

    @staticmethod
    def _folder(row: sqlite3.Row) -> MediaFolder:
        return MediaFolder(id=row["id"], path=row["path"], media_kind=MediaKind.parse(row["media_kind"]), active=bool(row["active"]))

    @staticmethod
    def _movie(row: sqlite3.Row) -> MovieRecord:
        return MovieRecord(
            id=row["id"], external_id=row["external_id"], title=row["title"], year=row["year"],
            overview=row["overview"], poster_path=row["poster_path"], backdrop_path=row["backdrop_path"],
            genres=json.loads(row["genres"] or "[]"), runtime=row["runtime"], rating=row["rating"],
            release_date=row["release_date"], file_path=row["file_path"], file_name=row["file_name"],
            attributes=_attrs_from_row(row), transcode_status=TranscodeStatus(row["transcode_status"]),
        )

    @staticmethod
    def _series(row: sqlite3.Row) -> SeriesRecord:
        return SeriesRecord(
            id=row["id"], external_id=row["external_id"], title=row["title"], overview=row["overview"],
            poster_path=row["poster_path"], backdrop_path=row["backdrop_path"],
            genres=json.loads(row["genres"] or "[]"), first_air_date=row["first_air_date"],
            last_air_date=row["last_air_date"], status=row["status"],
            transcode_status=TranscodeStatus(row["transcode_status"]),
        )

    @staticmethod
    def _episode(row: sqlite3.Row) -> EpisodeRecord:
        return EpisodeRecord(
            id=row["id"], series_id=row["series_id"], external_id=row["external_id"],
            season_number=row["season_number"], episode_number=row["episode_number"],
            title=row["title"], overview=row["overview"], air_date=row["air_date"],
            file_path=row["file_path"], file_name=row["file_name"], attributes=_attrs_from_row(row),
            transcode_status=TranscodeStatus(row["transcode_status"]),
        )

    @staticmethod
    def _conflict(row: sqlite3.Row) -> ScanningConflict:
        matches = [MatchCandidate.from_dict(m) for m in json.loads(row["possible_matches"] or "[]")]
        return ScanningConflict(
            id=row["id"], file_name=row["file_name"], file_path=row["file_path"],
            media_kind=MediaKind.parse(row["media_kind"]), possible_matches=matches,
            resolved=bool(row["resolved"]), selected_id=row["selected_id"],
        )

    # --- Media folders ---

    def add_folder(self, path: str, media_kind: MediaKind, active: bool = True) -> MediaFolder:
        try:
            with self._transaction() as conn:
                cur = conn.execute(
                    "INSERT INTO media_folders (path, media_kind, active, created_at) VALUES (?, ?, ?, ?)",
                    (path, media_kind.value, int(active), _now()))
                folder_id = cur.lastrowid
        except CatalogError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise CatalogError(f"Media folder already configured: {path}") from e.__cause__
            raise
        log.info(f"Added {media_kind} folder '{path}' (id {folder_id}).")
        return self.get_folder(folder_id)

    def get_folder(self, folder_id: int) -> MediaFolder:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM media_folders WHERE id = ?", (folder_id,)).fetchone()
        if not row:
            raise EntityNotFoundError(f"Media folder {folder_id} not found")
        return self._folder(row)

    def list_folders(self, active_only: bool = False) -> List[MediaFolder]:
        sql = "SELECT * FROM media_folders"
        if active_only: sql += " WHERE active = 1"
        with self._read() as conn:
            rows = conn.execute(sql + " ORDER BY id").fetchall()
        return [self._folder(r) for r in rows]

    def set_folder_active(self, folder_id: int, active: bool) -> MediaFolder:
        with self._transaction() as conn:
            cur = conn.execute("UPDATE media_folders SET active = ? WHERE id = ?", (int(active), folder_id))
            if cur.rowcount == 0:
                raise EntityNotFoundError(f"Media folder {folder_id} not found")
        return self.get_folder(folder_id)

    def remove_folder(self, folder_id: int) -> None:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM media_folders WHERE id = ?", (folder_id,))
            if cur.rowcount == 0:
                raise EntityNotFoundError(f"Media folder {folder_id} not found")

    # --- Movies ---

    def find_movie_by_path(self, file_path: str) -> Optional[MovieRecord]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM movies WHERE file_path = ? LIMIT 1", (file_path,)).fetchone()
        return self._movie(row) if row else None

    def find_movie_by_file_name(self, file_name: str) -> Optional[MovieRecord]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM movies WHERE file_name = ? LIMIT 1", (file_name,)).fetchone()
        return self._movie(row) if row else None

    def find_movie_by_title(self, title: str, year: Optional[int] = None) -> Optional[MovieRecord]:
        """Case-insensitive substring match on title, narrowed by year when one is given."""
        sql = "SELECT * FROM movies WHERE title LIKE ? ESCAPE '\\'"
        params: list = [_like_pattern(title)]
        if year is not None:
            sql += " AND year = ?"
            params.append(year)
        with self._read() as conn:
            row = conn.execute(sql + " ORDER BY id LIMIT 1", params).fetchone()
        return self._movie(row) if row else None

    def get_movie(self, movie_id: int) -> MovieRecord:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM movies WHERE id = ?", (movie_id,)).fetchone()
        if not row:
            raise EntityNotFoundError(f"Movie {movie_id} not found")
        return self._movie(row)

    def list_movies(self) -> List[MovieRecord]:
        with self._read() as conn:
            rows = conn.execute("SELECT * FROM movies ORDER BY id").fetchall()
        return [self._movie(r) for r in rows]

    def upsert_movie(self, record: MovieRecord) -> Tuple[MovieRecord, bool]:
        """
        Create-or-update keyed on external_id. Returns (record, created).
        The update path rewrites only the file-binding columns.
        """
        now = _now()
        binding = _binding_values(record.file_path, record.file_name, record.attributes)
        with self._transaction() as conn:
            existing = conn.execute("SELECT id FROM movies WHERE external_id = ?", (record.external_id,)).fetchone()
            if existing:
                assignments = ", ".join(f"{c} = ?" for c in _BINDING_COLUMNS)
                conn.execute(f"UPDATE movies SET {assignments}, updated_at = ? WHERE id = ?", (*binding, now, existing["id"]))
                movie_id, created = existing["id"], False
            else:
                cur = conn.execute(
                    "INSERT INTO movies (external_id, title, year, overview, poster_path, backdrop_path, genres, runtime, rating, release_date, "
                    f"{', '.join(_BINDING_COLUMNS)}, transcode_status, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (record.external_id, record.title, record.year, record.overview, record.poster_path, record.backdrop_path,
                     json.dumps(record.genres), record.runtime, record.rating, record.release_date,
                     *binding, record.transcode_status.value, now, now))
                movie_id, created = cur.lastrowid, True
        return self.get_movie(movie_id), created

    def delete_movie(self, movie_id: int) -> bool:
        with self._transaction() as conn:
            return conn.execute("DELETE FROM movies WHERE id = ?", (movie_id,)).rowcount > 0

    def update_movie_transcode_status(self, movie_id: int, status: TranscodeStatus) -> MovieRecord:
        with self._transaction() as conn:
            cur = conn.execute("UPDATE movies SET transcode_status = ?, updated_at = ? WHERE id = ?", (status.value, _now(), movie_id))
            if cur.rowcount == 0:
                raise EntityNotFoundError(f"Movie {movie_id} not found")
        return self.get_movie(movie_id)

    # --- Series ---

    def get_series(self, series_id: int) -> SeriesRecord:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM series WHERE id = ?", (series_id,)).fetchone()
        if not row:
            raise EntityNotFoundError(f"Series {series_id} not found")
        return self._series(row)

    def find_series_by_external_id(self, external_id: int) -> Optional[SeriesRecord]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM series WHERE external_id = ?", (external_id,)).fetchone()
        return self._series(row) if row else None

    def list_series(self) -> List[SeriesRecord]:
        with self._read() as conn:
            rows = conn.execute("SELECT * FROM series ORDER BY id").fetchall()
        return [self._series(r) for r in rows]

    def upsert_series(self, record: SeriesRecord) -> Tuple[SeriesRecord, bool]:
        """Create-or-reuse keyed on external_id. Descriptive fields are fixed at creation."""
        now = _now()
        with self._transaction() as conn:
            existing = conn.execute("SELECT id FROM series WHERE external_id = ?", (record.external_id,)).fetchone()
            if existing:
                series_id, created = existing["id"], False
            else:
                cur = conn.execute(
                    "INSERT INTO series (external_id, title, overview, poster_path, backdrop_path, genres, first_air_date, last_air_date, "
                    "status, transcode_status, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (record.external_id, record.title, record.overview, record.poster_path, record.backdrop_path,
                     json.dumps(record.genres), record.first_air_date, record.last_air_date, record.status,
                     record.transcode_status.value, now, now))
                series_id, created = cur.lastrowid, True
        return self.get_series(series_id), created

    def list_empty_series(self) -> List[SeriesRecord]:
        with self._read() as conn:
            rows = conn.execute(
                "SELECT s.* FROM series s WHERE NOT EXISTS (SELECT 1 FROM episodes e WHERE e.series_id = s.id) ORDER BY s.id").fetchall()
        return [self._series(r) for r in rows]

    def delete_series(self, series_id: int, only_if_empty: bool = True) -> bool:
        """Deletes a series. With only_if_empty the row survives if an episode was attached meanwhile."""
        sql = "DELETE FROM series WHERE id = ?"
        if only_if_empty:
            sql += " AND NOT EXISTS (SELECT 1 FROM episodes e WHERE e.series_id = series.id)"
        with self._transaction() as conn:
            return conn.execute(sql, (series_id,)).rowcount > 0

    def update_series_transcode_status(self, series_id: int, status: TranscodeStatus) -> int:
        """
        Sets the status on a series and every one of its episodes in a single
        transaction. Returns the number of episodes updated.

        Raises:
            EntityNotFoundError: no series with that id.
            CatalogError: the series has no episodes (nothing is written).
        """
        now = _now()
        with self._transaction() as conn:
            row = conn.execute("SELECT id, title FROM series WHERE id = ?", (series_id,)).fetchone()
            if not row:
                raise EntityNotFoundError(f"Series {series_id} not found")
            count = conn.execute("SELECT COUNT(*) FROM episodes WHERE series_id = ?", (series_id,)).fetchone()[0]
            if count == 0:
                raise CatalogError(f"Series '{row['title']}' ({series_id}) has no episodes")
            conn.execute("UPDATE series SET transcode_status = ?, updated_at = ? WHERE id = ?", (status.value, now, series_id))
            updated = conn.execute("UPDATE episodes SET transcode_status = ?, updated_at = ? WHERE series_id = ?",
                                   (status.value, now, series_id)).rowcount
        log.info(f"Series {series_id}: transcode status set to '{status}' on {updated} episode(s).")
        return updated

    # --- Episodes ---

    def find_episode_by_path(self, file_path: str) -> Optional[EpisodeRecord]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM episodes WHERE file_path = ? LIMIT 1", (file_path,)).fetchone()
        return self._episode(row) if row else None

    def find_episode_by_file_name(self, file_name: str) -> Optional[EpisodeRecord]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM episodes WHERE file_name = ? LIMIT 1", (file_name,)).fetchone()
        return self._episode(row) if row else None

    def find_episode_by_series_title(self, series_name: str, season_number: int, episode_number: int) -> Optional[EpisodeRecord]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT e.* FROM episodes e JOIN series s ON s.id = e.series_id "
                "WHERE s.title LIKE ? ESCAPE '\\' AND e.season_number = ? AND e.episode_number = ? ORDER BY e.id LIMIT 1",
                (_like_pattern(series_name), season_number, episode_number)).fetchone()
        return self._episode(row) if row else None

    def find_episode_by_key(self, external_id: int, season_number: int, episode_number: int) -> Optional[EpisodeRecord]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM episodes WHERE external_id = ? AND season_number = ? AND episode_number = ?",
                (external_id, season_number, episode_number)).fetchone()
        return self._episode(row) if row else None

    def get_episode(self, episode_id: int) -> EpisodeRecord:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM episodes WHERE id = ?", (episode_id,)).fetchone()
        if not row:
            raise EntityNotFoundError(f"Episode {episode_id} not found")
        return self._episode(row)

    def list_episodes(self, series_id: Optional[int] = None) -> List[EpisodeRecord]:
        sql, params = "SELECT * FROM episodes", ()
        if series_id is not None:
            sql, params = sql + " WHERE series_id = ?", (series_id,)
        with self._read() as conn:
            rows = conn.execute(sql + " ORDER BY id", params).fetchall()
        return [self._episode(r) for r in rows]

    def create_or_update_episode(self, record: EpisodeRecord) -> Tuple[EpisodeRecord, bool]:
        """Keyed on (external_id, season, episode). Update touches binding columns only."""
        now = _now()
        binding = _binding_values(record.file_path, record.file_name, record.attributes)
        with self._transaction() as conn:
            existing = conn.execute(
                "SELECT id FROM episodes WHERE external_id = ? AND season_number = ? AND episode_number = ?",
                (record.external_id, record.season_number, record.episode_number)).fetchone()
            if existing:
                assignments = ", ".join(f"{c} = ?" for c in _BINDING_COLUMNS)
                conn.execute(f"UPDATE episodes SET {assignments}, updated_at = ? WHERE id = ?", (*binding, now, existing["id"]))
                episode_id, created = existing["id"], False
            else:
                cur = conn.execute(
                    "INSERT INTO episodes (series_id, external_id, season_number, episode_number, title, overview, air_date, "
                    f"{', '.join(_BINDING_COLUMNS)}, transcode_status, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (record.series_id, record.external_id, record.season_number, record.episode_number, record.title,
                     record.overview, record.air_date, *binding, record.transcode_status.value, now, now))
                episode_id, created = cur.lastrowid, True
        return self.get_episode(episode_id), created

    def delete_episode(self, episode_id: int) -> bool:
        with self._transaction() as conn:
            return conn.execute("DELETE FROM episodes WHERE id = ?", (episode_id,)).rowcount > 0

    def update_episode_transcode_status(self, episode_id: int, status: TranscodeStatus) -> EpisodeRecord:
        with self._transaction() as conn:
            cur = conn.execute("UPDATE episodes SET transcode_status = ?, updated_at = ? WHERE id = ?", (status.value, _now(), episode_id))
            if cur.rowcount == 0:
                raise EntityNotFoundError(f"Episode {episode_id} not found")
        return self.get_episode(episode_id)

    # --- Scanning conflicts ---

    def get_conflict(self, conflict_id: int) -> ScanningConflict:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM scanning_conflicts WHERE id = ?", (conflict_id,)).fetchone()
        if not row:
            raise ConflictNotFoundError("Conflict not found")
        return self._conflict(row)

    def find_conflict_by_path(self, file_path: str) -> Optional[ScanningConflict]:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM scanning_conflicts WHERE file_path = ?", (file_path,)).fetchone()
        return self._conflict(row) if row else None

    def list_conflicts(self, resolved: Optional[bool] = False) -> List[ScanningConflict]:
        """resolved=None lists everything."""
        sql, params = "SELECT * FROM scanning_conflicts", ()
        if resolved is not None:
            sql, params = sql + " WHERE resolved = ?", (int(resolved),)
        with self._read() as conn:
            rows = conn.execute(sql + " ORDER BY created_at DESC, id DESC", params).fetchall()
        return [self._conflict(r) for r in rows]

    def upsert_conflict(self, media_kind: MediaKind, file_name: str, file_path: str,
                        candidates: List[MatchCandidate]) -> Tuple[ScanningConflict, bool]:
        """
        One row per file_path. An existing row gets the new name and
        candidates, and is re-opened (resolved = 0, selected_id cleared).
        """
        now = _now()
        payload = json.dumps([c.to_dict() for c in candidates])
        with self._transaction() as conn:
            existing = conn.execute("SELECT id FROM scanning_conflicts WHERE file_path = ?", (file_path,)).fetchone()
            if existing:
                conn.execute(
                    "UPDATE scanning_conflicts SET file_name = ?, media_kind = ?, possible_matches = ?, resolved = 0, "
                    "selected_id = NULL, updated_at = ? WHERE id = ?",
                    (file_name, media_kind.value, payload, now, existing["id"]))
                conflict_id, created = existing["id"], False
            else:
                cur = conn.execute(
                    "INSERT INTO scanning_conflicts (file_name, file_path, media_kind, possible_matches, resolved, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, 0, ?, ?)", (file_name, file_path, media_kind.value, payload, now, now))
                conflict_id, created = cur.lastrowid, True
        return self.get_conflict(conflict_id), created

    def mark_conflict_resolved(self, conflict_id: int, selected_id: int) -> ScanningConflict:
        with self._transaction() as conn:
            cur = conn.execute("UPDATE scanning_conflicts SET resolved = 1, selected_id = ?, updated_at = ? WHERE id = ?",
                               (selected_id, _now(), conflict_id))
            if cur.rowcount == 0:
                raise ConflictNotFoundError("Conflict not found")
        return self.get_conflict(conflict_id)

    def delete_conflict(self, conflict_id: int) -> None:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM scanning_conflicts WHERE id = ?", (conflict_id,))
            if cur.rowcount == 0:
                raise ConflictNotFoundError("Conflict not found")

    def delete_conflicts(self, resolved: bool) -> int:
        with self._transaction() as conn:
            return conn.execute("DELETE FROM scanning_conflicts WHERE resolved = ?", (int(resolved),)).rowcount
