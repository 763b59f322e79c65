# scan_app/api_clients.py

import logging
from typing import Optional

from tmdbv3api import TMDb

log = logging.getLogger(__name__)

# Global client instance
_tmdb_client: Optional[TMDb] = None
_clients_initialized = False

def initialize_api_clients(cfg_helper) -> bool:
    """Initializes the TMDB client from the configured key. Returns True when a key was loaded."""
    global _tmdb_client, _clients_initialized
    if _clients_initialized:
        log.debug("API clients already initialized.")
        return _tmdb_client is not None

    tmdb_key = cfg_helper.get_api_key('tmdb')
    language = cfg_helper('tmdb_language', 'en')

    if tmdb_key:
        try:
            _tmdb_client = TMDb()
            _tmdb_client.api_key = tmdb_key
            _tmdb_client.language = language
            log.info(f"TMDB API Client initialized (Lang: {language}).")
        except Exception as e:
            _tmdb_client = None
            log.error(f"Failed to init TMDB Client: {e}")
    else:
        log.warning("TMDB API Key not found. Metadata lookups will fail until TMDB_API_KEY is set.")

    _clients_initialized = True
    return _tmdb_client is not None

def get_tmdb_client() -> Optional[TMDb]:
    """Returns the initialized TMDB client instance, or None."""
    if not _clients_initialized:
        log.warning("Attempted to get TMDB client before initialization.")
        return None
    return _tmdb_client

def reset_api_clients():
    global _tmdb_client, _clients_initialized
    _tmdb_client = None
    _clients_initialized = False
