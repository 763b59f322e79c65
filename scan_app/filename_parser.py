# scan_app/filename_parser.py

"""
Filename heuristics for movies and episodes.

Each media kind has an ordered list of PatternRule objects. Rules are tried
top to bottom against the file's base name and the first rule that produces a
non-empty title wins. The order is the tie-break: the most specific shapes
come first, so "Show S01E02" is read by the joined-marker rule and never by
the bare two/three digit rule further down.

Nothing here touches the filesystem.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Tuple, Union

from .models import FileAttributes, ParsedEpisodeFile, ParsedMovieFile

log = logging.getLogger(__name__)

# Extensions stripped from the base name before matching. Anything else is
# treated as part of the name ("Show.S01E02.Title" has no extension to strip).
KNOWN_MEDIA_EXTENSIONS = frozenset({
    ".mp4", ".mkv", ".avi", ".m4v", ".mov", ".wmv", ".mpg", ".mpeg",
    ".ts", ".m2ts", ".webm", ".flv", ".ogv",
})

_SEP = r"[\s.\-_]"
_YEAR_RE = re.compile(r"^(?:19|20)\d{2}$")
_BRACKET_RE = re.compile(r"\[(.*?)\]")
_LEADING_TAG_RE = re.compile(r"^\s*\[[^\]]*\]\s*")
_TOKEN_SPLIT_RE = re.compile(r"[\s._]+")

ParseResult = Union[ParsedMovieFile, ParsedEpisodeFile]


@dataclass(frozen=True)
class PatternRule:
    name: str
    pattern: Pattern[str]
    extract: Callable[["re.Match[str]", str, str], Optional[ParseResult]]

    def apply(self, stem: str, file_name: str, file_path: str) -> Optional[ParseResult]:
        match = self.pattern.match(stem)
        if not match:
            return None
        return self.extract(match, file_name, file_path)


# --- Text helpers ---

def clean_title(raw: Optional[str]) -> str:
    """Dots and underscores become spaces, whitespace is collapsed and trimmed."""
    if not raw:
        return ""
    text = re.sub(r"[._]", " ", raw)
    return re.sub(r"\s+", " ", text).strip()

def _clean_series(raw: Optional[str]) -> str:
    return clean_title(_LEADING_TAG_RE.sub("", raw or ""))

def split_name(file_path: str) -> Tuple[str, str]:
    """Returns (file_name, stem). The stem drops only a known media extension."""
    file_name = os.path.basename(file_path)
    root, ext = os.path.splitext(file_name)
    stem = root if ext.lower() in KNOWN_MEDIA_EXTENSIONS else file_name
    return file_name, stem.strip()

def _is_year(token: str) -> bool:
    return bool(_YEAR_RE.match(token.strip()))

def _tail_attributes(tail: Optional[str]) -> FileAttributes:
    """Bracket groups win; otherwise delimiter-separated tokens, assigned positionally."""
    if not tail:
        return FileAttributes()
    groups = _BRACKET_RE.findall(tail)
    if groups:
        return FileAttributes.from_sequence(groups)
    return FileAttributes.from_sequence([t for t in _TOKEN_SPLIT_RE.split(tail) if t.strip("-")])

def _bracket_attributes(full_name: str) -> FileAttributes:
    return FileAttributes.from_sequence(_BRACKET_RE.findall(full_name))


# --- Movie rules ---

def _movie(file_name: str, file_path: str, title: str, year: Optional[int], attrs: FileAttributes) -> Optional[ParsedMovieFile]:
    cleaned = clean_title(title)
    if not cleaned:
        return None
    return ParsedMovieFile(file_name=file_name, file_path=file_path, title=cleaned, year=year, attributes=attrs)

def _extract_title_paren_year(m, file_name, file_path):
    return _movie(file_name, file_path, m.group("title"), int(m.group("year")), _tail_attributes(m.group("tail")))

def _extract_title_dotted_year(m, file_name, file_path):
    return _movie(file_name, file_path, m.group("title"), int(m.group("year")), _tail_attributes(m.group("tail")))

def _extract_title_bracket_tags(m, file_name, file_path):
    tags = _BRACKET_RE.findall(m.group("tags"))
    year = next((int(t) for t in tags if _is_year(t)), None)
    rest = [t for t in tags if not _is_year(t)]
    if not rest and m.group("tail"):
        return _movie(file_name, file_path, m.group("title"), year, _tail_attributes(m.group("tail")))
    return _movie(file_name, file_path, m.group("title"), year, FileAttributes.from_sequence(rest))

def _extract_title_paren_tags(m, file_name, file_path):
    tokens = [t for t in _TOKEN_SPLIT_RE.split(m.group("tags")) if t]
    year = next((int(t) for t in tokens if _is_year(t)), None)
    rest = [t for t in tokens if not _is_year(t)]
    return _movie(file_name, file_path, m.group("title"), year, FileAttributes.from_sequence(rest))

def _extract_bare_title(m, file_name, file_path):
    return _movie(file_name, file_path, m.group("title"), None, FileAttributes())

MOVIE_RULES: List[PatternRule] = [
    # Title (Year) [tag][tag] rest
    PatternRule("title_paren_year", re.compile(r"^(?P<title>.+?)[\s._]*\((?P<year>\d{4})\)(?P<tail>.*)$"), _extract_title_paren_year),
    # Title.Year.tags / Title Year
    PatternRule("title_dotted_year", re.compile(r"^(?P<title>.+?)[\s.]+(?P<year>(?:19|20)\d{2})(?:[\s.]+(?P<tail>.*))?$"), _extract_title_dotted_year),
    # Title [tag][tag]
    PatternRule("title_bracket_tags", re.compile(r"^(?P<title>[^\[]+?)[\s._]*(?P<tags>(?:\[[^\]]*\][\s._]*)+)(?P<tail>.*)$"), _extract_title_bracket_tags),
    # Title (tag tag)
    PatternRule("title_paren_tags", re.compile(r"^(?P<title>[^(]+?)[\s._]*\((?P<tags>[^)]*)\)(?P<tail>.*)$"), _extract_title_paren_tags),
    # Anything else is a bare title
    PatternRule("bare_title", re.compile(r"^(?P<title>.+)$"), _extract_bare_title),
]


# --- Episode rules ---

def _episode_factory(seasonless: bool):
    def extract(m, file_name, file_path):
        series = _clean_series(m.group("series"))
        if not series:
            return None
        season = None if seasonless else int(m.group("season"))
        return ParsedEpisodeFile(
            file_name=file_name, file_path=file_path, series_name=series,
            season_number=season, episode_number=int(m.group("episode")),
            attributes=_bracket_attributes(file_name),
        )
    return extract

_with_season = _episode_factory(seasonless=False)
_without_season = _episode_factory(seasonless=True)

EPISODE_RULES: List[PatternRule] = [
    # Series S01 E02 Title  (separate markers)
    PatternRule("spaced_season_episode", re.compile(
        rf"^(?P<series>.+?){_SEP}+[Ss](?P<season>\d{{1,2}}){_SEP}+[Ee](?P<episode>\d{{1,3}}){_SEP}*(?P<tail>.*)$"), _with_season),
    # Series.S01E02.Title
    PatternRule("joined_season_episode_title", re.compile(
        rf"^(?P<series>.+?){_SEP}+[Ss](?P<season>\d{{1,2}})[Ee](?P<episode>\d{{1,3}}){_SEP}+(?P<tail>.+)$"), _with_season),
    # Series S01E02
    PatternRule("joined_season_episode", re.compile(
        rf"^(?P<series>.+?){_SEP}+[Ss](?P<season>\d{{1,2}})[Ee](?P<episode>\d{{1,3}}){_SEP}*$"), _with_season),
    # Series 01x02 Title
    PatternRule("cross_season_episode_title", re.compile(
        rf"^(?P<series>.+?){_SEP}+(?P<season>\d{{1,2}})[xX](?P<episode>\d{{1,3}}){_SEP}+(?P<tail>.+)$"), _with_season),
    # Series 01x02
    PatternRule("cross_season_episode", re.compile(
        rf"^(?P<series>.+?){_SEP}+(?P<season>\d{{1,2}})[xX](?P<episode>\d{{1,3}}){_SEP}*$"), _with_season),
    # Series 05v2 Title
    PatternRule("versioned_number_title", re.compile(
        rf"^(?P<series>.+?){_SEP}+(?P<episode>\d{{2,3}})[vV]\d*{_SEP}+(?P<tail>.+)$"), _without_season),
    # Series - 05 - Title
    PatternRule("bare_number_title", re.compile(
        rf"^(?P<series>.+?){_SEP}+(?P<episode>\d{{2,3}}){_SEP}+(?P<tail>.+)$"), _without_season),
    # Series - 05 / Series 05v2
    PatternRule("bare_number", re.compile(
        rf"^(?P<series>.+?){_SEP}+(?P<episode>\d{{2,3}})(?:[vV]\d*)?{_SEP}*$"), _without_season),
]


# --- Public API ---

def _first_match(rules: List[PatternRule], file_path: str) -> Optional[ParseResult]:
    file_name, stem = split_name(file_path)
    if not stem:
        return None
    for rule in rules:
        result = rule.apply(stem, file_name, file_path)
        if result is not None:
            log.debug(f"'{file_name}' matched rule '{rule.name}'.")
            return result
    log.debug(f"'{file_name}' matched no rule.")
    return None

def parse_movie(file_path: str) -> Optional[ParsedMovieFile]:
    return _first_match(MOVIE_RULES, file_path)  # type: ignore[return-value]

def parse_episode(file_path: str) -> Optional[ParsedEpisodeFile]:
    return _first_match(EPISODE_RULES, file_path)  # type: ignore[return-value]


_FOLDER_QUALITY_RE = re.compile(r"\s+(1080p|720p|480p|2160p|4K|WEBRip|WEB-DL|BluRay|BRRip|HDRip|DVDRip).*$", re.IGNORECASE)
_LANGUAGE_RE = re.compile(r"\s+(Hindi|English|Tamil|Telugu|Malayalam|Kannada|Bengali)\s*", re.IGNORECASE)

def extract_series_name_from_folder(folder_name: str) -> str:
    """Best-effort series name for a season folder whose files could not be parsed."""
    name = re.sub(r"\.(mkv|mp4|avi)$", "", folder_name, flags=re.IGNORECASE)
    name = re.sub(r"[\s.\-_]+[Ss]\d{1,2}.*$", "", name)
    name = re.sub(r"\s*\(\d{4}\).*$", "", name)
    name = re.sub(r"\s+\d{4}\s+.*$", "", name)
    name = _FOLDER_QUALITY_RE.sub("", name)
    name = re.sub(r"[._]", " ", name)
    return re.sub(r"\s+", " ", name).strip()

def clean_series_name_for_search(name: str) -> str:
    """Second pass used when the folder-derived name finds nothing."""
    cleaned = _LANGUAGE_RE.sub(" ", name)
    cleaned = re.sub(r"^The\s+", "", cleaned.strip(), flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+(Series|Show|Season)$", "", cleaned, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", cleaned).strip()
