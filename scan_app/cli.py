import argparse
from pathlib import Path
from . import __version__
from .enums import TranscodeStatus

def create_parser():
    parser = argparse.ArgumentParser(
        description=f"Media library scanner (v{__version__}).",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', type=Path, help='Path to TOML config file (overrides default search).')
    parser.add_argument('--profile', type=str, default='default', help='Configuration profile to use.')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default=None, help='Console logging level (overrides config).')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path (overrides config).')
    parser.add_argument('--db-path', type=str, default=None, help='SQLite catalog path (overrides config).')
    parser.add_argument('--tmdb-language', type=str, default=None, help='Language for TMDB API calls (e.g., "de", overrides config/env).')
    parser.add_argument('--quiet', '-q', action='store_true', default=False, help='Suppress all non-essential console output. Errors still shown.')

    subparsers = parser.add_subparsers(dest='command', required=True, help='Action to perform')

    # --- Scan ---
    parser_scan = subparsers.add_parser('scan', help='Run one full scan of all active media folders.', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser_scan.add_argument('--json', dest='json_events', action='store_true', default=False, help='Stream progress events as JSON lines instead of a progress bar.')
    parser_scan.add_argument('--extensions', dest='video_extensions', type=str, default=None, help='Comma-separated video extensions (overrides config).')
    parser_scan.add_argument('--follow-symlinks', action=argparse.BooleanOptionalAction, default=None, help='Descend into symlinked directories (overrides config).')
    parser_scan.add_argument('--api-rate-limit-delay', type=float, default=None, help='Delay (sec) between API calls (overrides config).')

    # --- Schedule ---
    parser_schedule = subparsers.add_parser('schedule', help='Run full scans periodically until interrupted.')
    parser_schedule.add_argument('--scan-interval-minutes', type=float, default=None, help='Minutes between scans (overrides config).')
    parser_schedule.add_argument('--run-scan-on-start', action=argparse.BooleanOptionalAction, default=None, help='Scan immediately on start (overrides config).')

    # --- Folders ---
    parser_folders = subparsers.add_parser('folders', help='Manage media folders.')
    folders_sub = parser_folders.add_subparsers(dest='folders_command', required=True, help='Folder action to perform')
    folders_add = folders_sub.add_parser('add', help='Register a media folder.')
    folders_add.add_argument('path', type=Path, help='Folder to scan.')
    folders_add.add_argument('--kind', required=True, help="Media kind: 'movie' or 'series'.")
    folders_list = folders_sub.add_parser('list', help='List media folders.')
    folders_list.add_argument('--active', action='store_true', default=False, help='Only active folders.')
    for name, help_text in (('enable', 'Include a folder in scans.'), ('disable', 'Exclude a folder from scans (keeps its history).'), ('remove', 'Delete a folder configuration.')):
        sub = folders_sub.add_parser(name, help=help_text)
        sub.add_argument('folder_id', type=int, help='Folder ID (see "folders list").')

    # --- Conflicts ---
    parser_conflicts = subparsers.add_parser('conflicts', help='Inspect and resolve scanning conflicts.')
    conflicts_sub = parser_conflicts.add_subparsers(dest='conflicts_command', required=True, help='Conflict action to perform')
    conflicts_list = conflicts_sub.add_parser('list', help='List unresolved conflicts.')
    conflicts_list.add_argument('--all', action='store_true', default=False, help='Include resolved conflicts.')
    conflicts_resolve = conflicts_sub.add_parser('resolve', help='Pick a candidate and index the file.')
    conflicts_resolve.add_argument('conflict_id', type=int, help='Conflict ID.')
    conflicts_resolve.add_argument('external_id', type=int, help='TMDB ID of the chosen movie or series.')
    conflicts_delete = conflicts_sub.add_parser('delete', help='Delete one conflict.')
    conflicts_delete.add_argument('conflict_id', type=int, help='Conflict ID.')
    conflicts_sub.add_parser('clear', help='Delete all unresolved conflicts.')

    # --- Transcode status ---
    parser_status = subparsers.add_parser('series-status', help='Set the transcode status of a series and all its episodes.')
    parser_status.add_argument('series_id', type=int, help='Catalog series ID.')
    parser_status.add_argument('status', choices=[s.value for s in TranscodeStatus], help='New transcode status.')
    for kind in ('movie', 'episode'):
        parser_item_status = subparsers.add_parser(f'{kind}-status', help=f'Set the transcode status of a single {kind}.')
        parser_item_status.add_argument('item_id', type=int, help=f'Catalog {kind} ID.')
        parser_item_status.add_argument('status', choices=[s.value for s in TranscodeStatus], help='New transcode status.')

    # --- Config ---
    parser_config = subparsers.add_parser('config', help='Manage application configuration.')
    config_subparsers = parser_config.add_subparsers(dest='config_command', required=True, help='Configuration action to perform')
    parser_config_show = config_subparsers.add_parser('show', help='Show the currently loaded configuration.')
    parser_config_show.add_argument('--raw', action="store_true", help="Show the raw TOML content of the loaded config file without merging or validation.")
    config_subparsers.add_parser('validate', help='Validate the configuration file against the schema.')
    parser_config_generate = config_subparsers.add_parser('generate', help='Generate a default config.toml file.')
    parser_config_generate.add_argument('--output', type=Path, default=None, help='Where to write config.toml (default: CWD).')
    parser_config_generate.add_argument('--force', '-f', action='store_true', help='Overwrite the config file if it already exists.')

    return parser

def parse_arguments(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'profile', None):
        args.profile = 'default'
    return args
