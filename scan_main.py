#!/usr/bin/env python3
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict

import pytomlpp
from rich.console import Console
from rich.markup import escape

from scan_app.api_clients import initialize_api_clients
from scan_app.catalog_store import CatalogStore
from scan_app.cli import parse_arguments
from scan_app.config_manager import (
    BaseProfileSettings, ConfigHelper, ConfigManager, DEFAULT_CONFIG_FILENAME, generate_default_toml_content,
)
from scan_app.conflict_manager import ConflictManager
from scan_app.enums import MediaKind, TranscodeStatus
from scan_app.exceptions import ConfigError, EntityNotFoundError, ScannerError
from scan_app.indexer import MediaIndexer
from scan_app.log_setup import setup_logging
from scan_app.metadata_resolver import MetadataResolver
from scan_app.progress import stream_scan
from scan_app.scanner_engine import ScannerEngine
from scan_app.scheduler import MediaScanScheduler
from scan_app.ui_utils import (
    RichProgressSink, conflicts_table, folders_table, make_console, print_error, summary_table,
)

log = logging.getLogger("scan_app")


def build_engine(cfg: ConfigHelper, store: CatalogStore) -> ScannerEngine:
    if not initialize_api_clients(cfg):
        log.warning("TMDB client unavailable; every new file will fail its metadata lookup.")
    resolver = MetadataResolver(cfg)
    return ScannerEngine(
        store, resolver,
        extensions=cfg.get_list('video_extensions'),
        ignore_dirs=cfg.get_list('ignore_dirs'),
        ignore_patterns=cfg.get_list('ignore_patterns'),
        follow_symlinks=bool(cfg('follow_symlinks', False)),
    )


async def cmd_scan(args, cfg: ConfigHelper, store: CatalogStore, console: Console) -> int:
    engine = build_engine(cfg, store)
    try:
        if args.json_events:
            failed = False
            async for event in stream_scan(engine):
                print(json.dumps(event.to_dict()), flush=True)
                failed = failed or bool(event.error)
            return 1 if failed else 0
        if args.quiet:
            summary = await engine.run_full_scan()
        else:
            with RichProgressSink(console) as sink:
                summary = await engine.run_full_scan(progress_callback=sink)
            console.print(summary_table(summary))
        unresolved = await ConflictManager(store, engine.indexer).list_conflicts()
        if unresolved:
            console.print(f"[yellow]{len(unresolved)} unresolved conflict(s). Run 'conflicts list' to review.[/yellow]")
        return 0
    finally:
        engine.resolver.close()


async def cmd_schedule(args, cfg: ConfigHelper, store: CatalogStore, console: Console) -> int:
    engine = build_engine(cfg, store)
    scheduler = MediaScanScheduler(engine, interval_minutes=float(cfg('scan_interval_minutes', 60.0)),
                                   run_on_start=bool(cfg('run_scan_on_start', True)))
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            log.debug(f"Signal handler for {sig} not supported on this platform.")
    console.print(f"Scheduler running every {scheduler.interval_seconds / 60:.1f} minute(s). Press Ctrl+C to stop.")
    try:
        await scheduler.run_forever(stop_event)
    finally:
        engine.resolver.close()
    return 0


async def cmd_folders(args, store: CatalogStore, console: Console) -> int:
    if args.folders_command == 'add':
        folder_path = args.path.expanduser().resolve()
        if not folder_path.is_dir():
            print_error(f"[bold red]Error:[/bold red] '{folder_path}' is not a directory.", args.quiet)
            return 1
        try:
            kind = MediaKind.parse(args.kind)
        except ValueError as e:
            print_error(f"[bold red]Error:[/bold red] {e}. Use 'movie' or 'series'.", args.quiet)
            return 1
        folder = store.add_folder(str(folder_path), kind)
        console.print(f"[green]✓ Added {folder.media_kind} folder {folder.id}: {folder.path}[/green]")
    elif args.folders_command == 'list':
        folders = store.list_folders(active_only=args.active)
        if folders: console.print(folders_table(folders))
        else: console.print("No media folders configured. Add one with 'folders add PATH --kind movie|series'.")
    elif args.folders_command in ('enable', 'disable'):
        folder = store.set_folder_active(args.folder_id, args.folders_command == 'enable')
        console.print(f"Folder {folder.id} is now {'active' if folder.active else 'inactive'}.")
    elif args.folders_command == 'remove':
        store.remove_folder(args.folder_id)
        console.print(f"Folder {args.folder_id} removed.")
    return 0


async def cmd_conflicts(args, cfg: ConfigHelper, store: CatalogStore, console: Console) -> int:
    if args.conflicts_command == 'resolve':
        initialize_api_clients(cfg)
        resolver = MetadataResolver(cfg)
        try:
            manager = ConflictManager(store, MediaIndexer(store, resolver))
            conflict = await manager.resolve_conflict(args.conflict_id, args.external_id)
        finally:
            resolver.close()
        console.print(f"[green]✓ Conflict {conflict.id} resolved with TMDB id {conflict.selected_id}.[/green]")
        return 0

    manager = ConflictManager(store, indexer=None)
    if args.conflicts_command == 'list':
        conflicts = await manager.list_conflicts(resolved=None if args.all else False)
        if conflicts: console.print(conflicts_table(conflicts))
        else: console.print("No conflicts.")
    elif args.conflicts_command == 'delete':
        console.print(await manager.delete_conflict(args.conflict_id))
    elif args.conflicts_command == 'clear':
        count = await manager.delete_all_unresolved()
        console.print(f"Deleted {count} unresolved conflict(s).")
    return 0


def cmd_config(args, manager: ConfigManager, cfg: ConfigHelper, console: Console) -> int:
    if args.config_command == 'show':
        console.print(f"--- Configuration Effective for Profile: '{args.profile}' ---")
        if manager.config_path.is_file():
            console.print(f"Config file loaded: [cyan]{manager.config_path}[/cyan]")
        else:
            console.print(f"Config file [yellow]{manager.config_path}[/yellow] not found. Using internal defaults and environment variables.")
        if args.raw:
            console.print(manager.get_raw_toml_content() or "# No config file loaded or content was empty.", markup=False)
            return 0
        effective: Dict[str, Any] = {key: cfg(key) for key in BaseProfileSettings.model_fields}
        effective['db_path'] = cfg.db_path()
        effective['_api_info_'] = {'tmdb_api_key_loaded': bool(cfg.get_api_key('tmdb'))}
        console.print(json.dumps(effective, indent=2, default=str), markup=False)
        return 0

    if args.config_command == 'validate':
        console.print(f"--- Validating Configuration File: {manager.config_path} ---")
        if not manager.config_path.is_file():
            console.print(f"Config file '[yellow]{manager.config_path}[/yellow]' not found. Nothing to validate.")
            return 0
        try:
            ConfigManager.validate_dict(pytomlpp.loads(manager.config_path.read_text(encoding='utf-8')), str(manager.config_path))
        except pytomlpp.DecodeError as e_toml:
            print_error(f"[bold red]Error:[/bold red] Config file is not valid TOML: {e_toml}", args.quiet)
            return 1
        except ConfigError as e_cfg:
            print_error(str(e_cfg), args.quiet)
            return 1
        console.print("[green]Configuration file syntax is valid and conforms to the schema.[/green]")
        return 0
    return 0


def cmd_config_generate(args, console: Console) -> int:
    target_path = (args.output or Path.cwd() / DEFAULT_CONFIG_FILENAME).expanduser().resolve()
    if target_path.exists() and not args.force:
        print_error(f"Config file {target_path} exists. Use --force to overwrite.", args.quiet)
        return 1
    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_text(generate_default_toml_content(), encoding="utf-8")
    except OSError as e:
        print_error(f"Error: Could not write configuration file to {target_path}: {e}", args.quiet)
        return 1
    console.print(f"[green]✓ Default configuration file generated at: {target_path}[/green]")
    return 0


async def main_async(argv=None) -> int:
    args = parse_arguments(argv)
    is_quiet = getattr(args, 'quiet', False)
    console = make_console(quiet=is_quiet)

    try:
        if args.command == 'config' and args.config_command == 'generate':
            return cmd_config_generate(args, console)

        config_manager = ConfigManager(config_path_override=getattr(args, 'config', None))
        cfg = ConfigHelper(config_manager, args)

        log_level_str = cfg('log_level', 'INFO')
        setup_logging(log_level_console=getattr(logging, str(log_level_str).upper(), logging.INFO),
                      log_file=cfg('log_file', None), quiet=is_quiet)
        log.debug(f"Full logging configured. Parsed args: {args}")

        if args.command == 'config':
            return cmd_config(args, config_manager, cfg, console)

        store = CatalogStore(cfg.db_path())
        if args.command == 'scan':
            return await cmd_scan(args, cfg, store, console)
        if args.command == 'schedule':
            return await cmd_schedule(args, cfg, store, console)
        if args.command == 'folders':
            return await cmd_folders(args, store, console)
        if args.command == 'conflicts':
            return await cmd_conflicts(args, cfg, store, console)
        if args.command == 'series-status':
            updated = store.update_series_transcode_status(args.series_id, TranscodeStatus(args.status))
            console.print(f"Series {args.series_id} and {updated} episode(s) set to '{args.status}'.")
            return 0
        if args.command == 'movie-status':
            movie = store.update_movie_transcode_status(args.item_id, TranscodeStatus(args.status))
            console.print(f"Movie {args.item_id} ('{escape(movie.title)}') set to '{args.status}'.")
            return 0
        if args.command == 'episode-status':
            episode = store.update_episode_transcode_status(args.item_id, TranscodeStatus(args.status))
            console.print(f"Episode {args.item_id} (S{episode.season_number:02d}E{episode.episode_number:02d}) set to '{args.status}'.")
            return 0
        return 1

    except ConfigError as e_cfg:
        print_error(f"FATAL CONFIGURATION ERROR: {e_cfg}", is_quiet)
        if log.handlers: log.critical(f"Config Error: {e_cfg}")
        return 2
    except EntityNotFoundError as e_nf:
        print_error(f"[bold red]Not found:[/bold red] {e_nf}", is_quiet)
        return 1
    except ScannerError as e_app:
        if log.handlers: log.error(f"Application Error: {e_app}", exc_info=True)
        print_error(f"[bold red]ERROR:[/bold red] {e_app}", is_quiet)
        return 1


def main(argv=None) -> int:
    try:
        return asyncio.run(main_async(argv))
    except KeyboardInterrupt:
        print("\nCancelled by user.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
