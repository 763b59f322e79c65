# scan_app/enums.py
from enum import Enum, auto


class MediaKind(str, Enum):
    MOVIE = "movie"
    SERIES = "series"

    @classmethod
    def parse(cls, value: str) -> "MediaKind":
        # Folder types were historically stored as "movies"
        normalized = str(value).strip().lower()
        if normalized in ("movie", "movies"):
            return cls.MOVIE
        if normalized in ("series", "tv", "show", "shows"):
            return cls.SERIES
        raise ValueError(f"Unknown media kind: {value!r}")

    def __str__(self):
        return self.value


class TranscodeStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self):
        return self.value


class ScanOutcome(Enum):
    """
    Result of processing a single discovered file during a scan.
    Used for logging and for the per-scan statistics in the summary.
    """
    INDEXED = auto()                     # New catalog record created
    UPDATED = auto()                     # Existing record's file binding refreshed
    ALREADY_INDEXED = auto()             # Existence check hit, nothing to do
    CONFLICT_NO_MATCH = auto()           # Metadata search returned zero candidates
    CONFLICT_AMBIGUOUS = auto()          # Metadata search returned two or more candidates
    CONFLICT_EPISODE_NOT_FOUND = auto()  # Series matched but the episode does not exist upstream
    PARSE_FAILED = auto()                # No filename rule matched
    DEFERRED = auto()                    # Unparseable episode, grouped into a folder conflict later
    FAILED = auto()                      # Unexpected per-file error, logged and skipped

    def __str__(self):
        return self.name.replace("_", " ").title()
