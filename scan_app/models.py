# models.py
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any

from .enums import MediaKind, TranscodeStatus

@dataclass
class MediaFolder:
    """A configured root directory holding either movies or series."""
    path: str
    media_kind: MediaKind
    active: bool = True
    id: Optional[int] = None

@dataclass
class FileAttributes:
    """Quality tags recovered from a file name. Positional order matters for bracket groups."""
    resolution: Optional[str] = None # e.g., "1080p"
    quality: Optional[str] = None # e.g., "HDR", "x265"
    rip: Optional[str] = None # e.g., "BluRay", "WEBRip"
    sound: Optional[str] = None # e.g., "DTS", "AAC5.1"
    provider: Optional[str] = None # release group / source tag

    FIELDS = ("resolution", "quality", "rip", "sound", "provider")

    @classmethod
    def from_sequence(cls, values: List[str]) -> "FileAttributes":
        cleaned = [v.strip() for v in values if v and v.strip()]
        return cls(**{name: value for name, value in zip(cls.FIELDS, cleaned)})

@dataclass
class ParsedMovieFile:
    file_name: str
    file_path: str
    title: str
    year: Optional[int] = None
    attributes: FileAttributes = field(default_factory=FileAttributes)

@dataclass
class ParsedEpisodeFile:
    file_name: str
    file_path: str
    series_name: str
    season_number: Optional[int] # None for seasonless (absolute-number) names
    episode_number: int
    attributes: FileAttributes = field(default_factory=FileAttributes)

    @property
    def effective_season(self) -> int:
        return self.season_number if self.season_number is not None else 1

@dataclass
class MatchCandidate:
    """
    One search hit from the metadata resolver. Stored verbatim in a
    conflict's possible matches so a human can pick between them later.
    """
    external_id: int
    name: str
    media_kind: MediaKind
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    # Movie specific
    release_date: Optional[str] = None
    runtime: Optional[int] = None
    rating: Optional[float] = None
    # Series specific
    first_air_date: Optional[str] = None
    last_air_date: Optional[str] = None
    status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["media_kind"] = self.media_kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchCandidate":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known["media_kind"] = MediaKind.parse(known.get("media_kind", "movie"))
        known["genres"] = list(known.get("genres") or [])
        return cls(**known)

@dataclass
class MovieDetails:
    external_id: int
    title: str
    overview: Optional[str] = None
    release_date: Optional[str] = None
    year: Optional[int] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    runtime: Optional[int] = None
    rating: Optional[float] = None

@dataclass
class SeriesDetails:
    external_id: int
    title: str
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    first_air_date: Optional[str] = None
    last_air_date: Optional[str] = None
    status: Optional[str] = None

@dataclass
class EpisodeDetails:
    external_id: int
    title: str
    season_number: int
    episode_number: int
    overview: Optional[str] = None
    air_date: Optional[str] = None

# --- Catalog records ---

@dataclass
class MovieRecord:
    external_id: int
    title: str
    file_path: str
    file_name: str
    year: Optional[int] = None
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    runtime: Optional[int] = None
    rating: Optional[float] = None
    release_date: Optional[str] = None
    attributes: FileAttributes = field(default_factory=FileAttributes)
    transcode_status: TranscodeStatus = TranscodeStatus.PENDING
    id: Optional[int] = None

@dataclass
class SeriesRecord:
    external_id: int
    title: str
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    first_air_date: Optional[str] = None
    last_air_date: Optional[str] = None
    status: Optional[str] = None
    transcode_status: TranscodeStatus = TranscodeStatus.PENDING
    id: Optional[int] = None

@dataclass
class EpisodeRecord:
    series_id: int
    external_id: int
    season_number: int
    episode_number: int
    title: str
    file_path: str
    file_name: str
    overview: Optional[str] = None
    air_date: Optional[str] = None
    attributes: FileAttributes = field(default_factory=FileAttributes)
    transcode_status: TranscodeStatus = TranscodeStatus.PENDING
    id: Optional[int] = None

@dataclass
class ScanningConflict:
    file_name: str
    file_path: str
    media_kind: MediaKind
    possible_matches: List[MatchCandidate] = field(default_factory=list)
    resolved: bool = False
    selected_id: Optional[int] = None
    id: Optional[int] = None

# --- Scan plumbing ---

@dataclass
class ScanConfig:
    movie_paths: List[str] = field(default_factory=list)
    series_paths: List[str] = field(default_factory=list)
    file_extensions: List[str] = field(default_factory=lambda: [".mp4", ".mkv", ".avi"])

@dataclass
class ScanSummary:
    """Returned by a full scan and carried by the final progress event."""
    removed_movies: int = 0
    removed_episodes: int = 0
    removed_series: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict) # ScanOutcome name -> count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "removed_movies": self.removed_movies,
            "removed_episodes": self.removed_episodes,
            "removed_series": self.removed_series,
            "outcomes": dict(self.outcomes),
        }

@dataclass
class ProgressEvent:
    status: str
    progress: int
    details: Optional[Dict[str, Any]] = None
    complete: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status, "progress": self.progress}
        if self.details is not None: data["details"] = self.details
        if self.complete: data["complete"] = True
        if self.error: data["error"] = self.error
        return data

# --- Record builders ---

def build_movie_record(parsed: ParsedMovieFile, details: MovieDetails) -> MovieRecord:
    return MovieRecord(
        external_id=details.external_id, title=details.title,
        file_path=parsed.file_path, file_name=parsed.file_name,
        year=details.year if details.year is not None else parsed.year,
        overview=details.overview, poster_path=details.poster_path,
        backdrop_path=details.backdrop_path, genres=list(details.genres),
        runtime=details.runtime, rating=details.rating,
        release_date=details.release_date, attributes=parsed.attributes,
    )

def build_series_record(details: SeriesDetails) -> SeriesRecord:
    return SeriesRecord(
        external_id=details.external_id, title=details.title, overview=details.overview,
        poster_path=details.poster_path, backdrop_path=details.backdrop_path,
        genres=list(details.genres), first_air_date=details.first_air_date,
        last_air_date=details.last_air_date, status=details.status,
    )

def build_episode_record(parsed: ParsedEpisodeFile, series_id: int, details: EpisodeDetails) -> EpisodeRecord:
    return EpisodeRecord(
        series_id=series_id, external_id=details.external_id,
        season_number=details.season_number, episode_number=details.episode_number,
        title=details.title, file_path=parsed.file_path, file_name=parsed.file_name,
        overview=details.overview, air_date=details.air_date, attributes=parsed.attributes,
    )
