# tests/test_catalog_store.py
import pytest

from scan_app.enums import MediaKind, TranscodeStatus
from scan_app.exceptions import CatalogError, ConflictNotFoundError, EntityNotFoundError
from scan_app.models import (
    EpisodeRecord, FileAttributes, MatchCandidate, MovieRecord, SeriesRecord,
)


def _movie(external_id=27205, title="Inception", path="/m/Inception (2010).mkv", **kwargs):
    return MovieRecord(external_id=external_id, title=title, file_path=path,
                       file_name=path.rsplit("/", 1)[-1], year=2010, **kwargs)

def _series(store, external_id=1399, title="Game of Thrones"):
    series, _ = store.upsert_series(SeriesRecord(external_id=external_id, title=title))
    return series

def _episode(series_id, season=1, episode=1, path="/tv/GoT S01E01.mkv", external_id=63056):
    return EpisodeRecord(series_id=series_id, external_id=external_id, season_number=season, episode_number=episode,
                         title="Winter Is Coming", file_path=path, file_name=path.rsplit("/", 1)[-1])


# --- Folders ---
def test_folder_crud(store):
    folder = store.add_folder("/media/movies", MediaKind.MOVIE)
    series_folder = store.add_folder("/media/tv", MediaKind.SERIES)
    assert folder.id is not None and folder.active is True
    assert [f.path for f in store.list_folders()] == ["/media/movies", "/media/tv"]

    store.set_folder_active(series_folder.id, False)
    assert [f.id for f in store.list_folders(active_only=True)] == [folder.id]

    store.remove_folder(folder.id)
    with pytest.raises(EntityNotFoundError):
        store.get_folder(folder.id)

def test_add_duplicate_folder_raises(store):
    store.add_folder("/media/movies", MediaKind.MOVIE)
    with pytest.raises(CatalogError, match="already configured"):
        store.add_folder("/media/movies", MediaKind.MOVIE)

def test_unknown_folder_operations_raise(store):
    with pytest.raises(EntityNotFoundError):
        store.set_folder_active(42, True)
    with pytest.raises(EntityNotFoundError):
        store.remove_folder(42)


# --- Movies ---
def test_upsert_movie_creates_then_updates_binding_only(store):
    created, was_created = store.upsert_movie(_movie(overview="Dreams.", genres=["Sci-Fi"],
                                                     attributes=FileAttributes(resolution="720p")))
    assert was_created is True
    assert created.genres == ["Sci-Fi"]

    rescanned = _movie(title="Renamed Upstream", path="/new/Inception.2010.mkv", overview="Changed.",
                       attributes=FileAttributes(resolution="2160p", quality="HDR"))
    updated, was_created = store.upsert_movie(rescanned)
    assert was_created is False
    assert updated.id == created.id
    assert updated.file_path == "/new/Inception.2010.mkv"
    assert updated.file_name == "Inception.2010.mkv"
    assert updated.attributes.resolution == "2160p"
    assert updated.attributes.quality == "HDR"
    # Descriptive fields are fixed at creation
    assert updated.title == "Inception"
    assert updated.overview == "Dreams."
    assert len(store.list_movies()) == 1

def test_find_movie_lookups(store):
    store.upsert_movie(_movie())
    assert store.find_movie_by_path("/m/Inception (2010).mkv") is not None
    assert store.find_movie_by_file_name("Inception (2010).mkv") is not None
    assert store.find_movie_by_title("incep") is not None
    assert store.find_movie_by_title("Inception", 2010) is not None
    assert store.find_movie_by_title("Inception", 1999) is None
    assert store.find_movie_by_path("/m/other.mkv") is None

def test_find_movie_by_title_escapes_wildcards(store):
    store.upsert_movie(_movie())
    assert store.find_movie_by_title("%") is None
    assert store.find_movie_by_title("_nception") is None

def test_delete_movie(store):
    movie, _ = store.upsert_movie(_movie())
    assert store.delete_movie(movie.id) is True
    assert store.delete_movie(movie.id) is False

def test_movie_transcode_status(store):
    movie, _ = store.upsert_movie(_movie())
    assert movie.transcode_status == TranscodeStatus.PENDING
    assert store.update_movie_transcode_status(movie.id, TranscodeStatus.QUEUED).transcode_status == TranscodeStatus.QUEUED
    with pytest.raises(EntityNotFoundError):
        store.update_movie_transcode_status(999, TranscodeStatus.QUEUED)

def test_episode_transcode_status_leaves_siblings_alone(store):
    series = _series(store)
    first, _ = store.create_or_update_episode(_episode(series.id))
    second, _ = store.create_or_update_episode(_episode(series.id, episode=2, path="/tv/GoT S01E02.mkv", external_id=63057))

    updated = store.update_episode_transcode_status(first.id, TranscodeStatus.COMPLETED)

    assert updated.transcode_status == TranscodeStatus.COMPLETED
    assert store.get_episode(second.id).transcode_status == TranscodeStatus.PENDING
    assert store.get_series(series.id).transcode_status == TranscodeStatus.PENDING
    with pytest.raises(EntityNotFoundError):
        store.update_episode_transcode_status(999, TranscodeStatus.FAILED)


# --- Series and episodes ---
def test_upsert_series_reuses_existing(store):
    first, created = store.upsert_series(SeriesRecord(external_id=1399, title="Game of Thrones"))
    again, created_again = store.upsert_series(SeriesRecord(external_id=1399, title="Other Title"))
    assert created is True and created_again is False
    assert again.id == first.id
    assert again.title == "Game of Thrones"

def test_create_or_update_episode_keyed_on_external_season_episode(store):
    series = _series(store)
    episode, created = store.create_or_update_episode(_episode(series.id))
    assert created is True
    moved, created = store.create_or_update_episode(_episode(series.id, path="/tv2/GoT.S01E01.1080p.mkv"))
    assert created is False
    assert moved.id == episode.id
    assert moved.file_path == "/tv2/GoT.S01E01.1080p.mkv"
    assert moved.title == "Winter Is Coming"
    assert len(store.list_episodes(series.id)) == 1

def test_find_episode_lookups(store):
    series = _series(store)
    store.create_or_update_episode(_episode(series.id))
    assert store.find_episode_by_path("/tv/GoT S01E01.mkv") is not None
    assert store.find_episode_by_file_name("GoT S01E01.mkv") is not None
    assert store.find_episode_by_series_title("game of", 1, 1) is not None
    assert store.find_episode_by_series_title("Game of Thrones", 1, 2) is None
    assert store.find_episode_by_key(63056, 1, 1) is not None

def test_deleting_series_cascades_to_episodes(store):
    series = _series(store)
    store.create_or_update_episode(_episode(series.id))
    assert store.delete_series(series.id, only_if_empty=True) is False
    assert store.delete_series(series.id, only_if_empty=False) is True
    assert store.list_episodes() == []

def test_list_empty_series(store):
    empty = _series(store, external_id=1, title="Empty")
    full = _series(store, external_id=2, title="Full")
    store.create_or_update_episode(_episode(full.id))
    assert [s.id for s in store.list_empty_series()] == [empty.id]

def test_update_series_transcode_status_updates_all_episodes(store):
    series = _series(store)
    store.create_or_update_episode(_episode(series.id, episode=1, external_id=1))
    store.create_or_update_episode(_episode(series.id, episode=2, external_id=2, path="/tv/GoT S01E02.mkv"))

    assert store.update_series_transcode_status(series.id, TranscodeStatus.IN_PROGRESS) == 2
    assert store.get_series(series.id).transcode_status == TranscodeStatus.IN_PROGRESS
    assert {e.transcode_status for e in store.list_episodes(series.id)} == {TranscodeStatus.IN_PROGRESS}

def test_update_series_transcode_status_errors(store):
    with pytest.raises(EntityNotFoundError):
        store.update_series_transcode_status(404, TranscodeStatus.QUEUED)
    series = _series(store)
    with pytest.raises(CatalogError, match="no episodes"):
        store.update_series_transcode_status(series.id, TranscodeStatus.QUEUED)
    assert store.get_series(series.id).transcode_status == TranscodeStatus.PENDING


# --- Conflicts ---
def _candidates(*names):
    return [MatchCandidate(external_id=i + 1, name=n, media_kind=MediaKind.SERIES, genres=["Drama"])
            for i, n in enumerate(names)]

def test_upsert_conflict_one_row_per_path(store):
    conflict, created = store.upsert_conflict(MediaKind.SERIES, "Random Show S01E01.mkv", "/tv/Random Show S01E01.mkv",
                                              _candidates("Random Show", "Random Show (2019)"))
    assert created is True
    assert [c.name for c in conflict.possible_matches] == ["Random Show", "Random Show (2019)"]
    assert conflict.possible_matches[0].media_kind == MediaKind.SERIES
    assert conflict.possible_matches[0].genres == ["Drama"]

    store.mark_conflict_resolved(conflict.id, 1)
    reopened, created = store.upsert_conflict(MediaKind.SERIES, "Random Show S01E01.mkv", "/tv/Random Show S01E01.mkv",
                                              _candidates("Random Show"))
    assert created is False
    assert reopened.id == conflict.id
    assert reopened.resolved is False
    assert reopened.selected_id is None
    assert len(reopened.possible_matches) == 1
    assert len(store.list_conflicts(resolved=None)) == 1

def test_conflict_listing_and_bulk_delete(store):
    a, _ = store.upsert_conflict(MediaKind.MOVIE, "a.mkv", "/m/a.mkv", [])
    store.upsert_conflict(MediaKind.MOVIE, "b.mkv", "/m/b.mkv", [])
    store.mark_conflict_resolved(a.id, 10)

    assert [c.file_name for c in store.list_conflicts()] == ["b.mkv"]
    assert [c.file_name for c in store.list_conflicts(resolved=True)] == ["a.mkv"]
    assert store.delete_conflicts(resolved=True) == 1
    assert store.delete_conflicts(resolved=False) == 1
    assert store.list_conflicts(resolved=None) == []

def test_unknown_conflict_raises(store):
    with pytest.raises(ConflictNotFoundError, match="Conflict not found"):
        store.get_conflict(7)
    with pytest.raises(ConflictNotFoundError):
        store.delete_conflict(7)
    with pytest.raises(ConflictNotFoundError):
        store.mark_conflict_resolved(7, 1)
