from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from drumcore.catalog import CatalogStore, EntryCollection
from drumcore.config import ALLOWED_SUBDIVISIONS, get_settings
from drumcore.errors import (
    DrummingError,
    EntryNotFoundError,
    InvalidParameterError,
    StorageError,
)
from drumcore.models import Difficulty, Platform, Rudiment, RudimentUpdate, Song, SongUpdate
from drumcore.sessions import SessionOrchestrator
from drumcore.timers import SystemClock  # IMPORTANT: allow monkeypatch in tests

from drumcli import prompts
from drumcli.console import ConsoleReporter

logger = logging.getLogger("drumming")

# exit codes (keep stable)
EXIT_OK = 0
EXIT_BAD_ARGS = 5
EXIT_NOT_FOUND = 6
EXIT_STORAGE = 7

DIFFICULTIES = [d.value for d in Difficulty]
PLATFORMS = [p.value for p in Platform]


def _print_err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _configure_logging(level: str) -> None:
    # once (avoid duplicated handlers when main() is called repeatedly in tests)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )


def _store(args: argparse.Namespace) -> CatalogStore:
    return CatalogStore(args.catalog) if getattr(args, "catalog", None) else CatalogStore()


def _orchestrator(args: argparse.Namespace, store: Optional[CatalogStore] = None) -> SessionOrchestrator:
    s = get_settings()
    reporter = ConsoleReporter(bell=s.bell and not getattr(args, "no_bell", False))
    return SessionOrchestrator(store, reporter=reporter, clock=SystemClock())


def _describe_rudiment(r: Rudiment) -> str:
    return f"{r.name} ({r.difficulty.value}) - {r.description}"


def _describe_song(s: Song) -> str:
    return f"{s.title} ({s.difficulty.value}) - {s.description}"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="drumming", description="A CLI tool to help with drumming practice and learning")
    p.add_argument("--catalog", default=None, help="Catalog JSON path (default: CATALOG_PATH setting)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ------------------------------------------------------------
    # metronome
    # ------------------------------------------------------------
    m = sub.add_parser("metronome", help="Start a metronome with customizable tempo")
    m.add_argument("-t", "--tempo", type=int, default=None, help="Tempo in beats per minute (30-300)")
    m.add_argument(
        "-s", "--subdivision", type=int, default=None, help="Subdivision (" + ", ".join(map(str, ALLOWED_SUBDIVISIONS)) + ")"
    )
    m.add_argument("-d", "--duration", type=int, default=0, help="Duration in seconds (0 for infinite)")
    m.add_argument("--no-bell", dest="no_bell", action="store_true", help="Do not ring the terminal bell")

    # ------------------------------------------------------------
    # practice
    # ------------------------------------------------------------
    pr = sub.add_parser("practice", help="Practice routines and exercises")
    pr.add_argument("-e", "--exercise", default=None, help="Specific exercise to practice")
    pr.add_argument("-d", "--duration", type=int, default=None, help="Practice duration in minutes")

    # ------------------------------------------------------------
    # rhythm
    # ------------------------------------------------------------
    r = sub.add_parser("rhythm", help="Learn and practice different rhythms")
    r.add_argument("-r", "--rhythm", default=None, help="Specific rhythm to practice")
    r.add_argument("-t", "--tempo", type=int, default=None, help="Override tempo in BPM")
    r.add_argument("-d", "--duration", type=int, default=None, help="Practice duration in minutes")
    r.add_argument("--no-bell", dest="no_bell", action="store_true", help="Do not ring the terminal bell")

    # ------------------------------------------------------------
    # db: catalog management
    # ------------------------------------------------------------
    db = sub.add_parser("db", help="Manage the drumming database (rudiments and songs)")
    db_sub = db.add_subparsers(dest="db_cmd", required=True)

    init = db_sub.add_parser("init", help="Create an empty catalog file")
    init.add_argument("--force", action="store_true", help="Overwrite an existing catalog")

    ar = db_sub.add_parser("add-rudiment", help="Add a new rudiment to the database")
    ar.add_argument("--name", default=None)
    ar.add_argument("--description", default=None)
    ar.add_argument("--duration", type=int, default=None, help="Duration in minutes")
    ar.add_argument("--difficulty", choices=DIFFICULTIES, default=None)
    ar.add_argument("--url", default=None)
    ar.add_argument("--platform", choices=PLATFORMS, default=None)

    asg = db_sub.add_parser("add-song", help="Add a new song to the database")
    asg.add_argument("--title", default=None)
    asg.add_argument("--artist", default=None)
    asg.add_argument("--description", default=None)
    asg.add_argument("--tempo", type=int, default=None, help="Tempo in BPM")
    asg.add_argument("--length", type=int, default=None, help="Length in seconds")
    asg.add_argument("--difficulty", choices=DIFFICULTIES, default=None)
    asg.add_argument("--url", default=None)
    asg.add_argument("--platform", choices=PLATFORMS, default=None)

    up = db_sub.add_parser("update", help="Update fields of a rudiment or song")
    target = up.add_mutually_exclusive_group(required=True)
    target.add_argument("-r", "--rudiment", default=None, help="Rudiment id")
    target.add_argument("-s", "--song", default=None, help="Song id")
    up.add_argument(
        "--set", dest="assignments", action="append", default=[], metavar="FIELD=VALUE", help="Field to change (repeatable)"
    )

    ls = db_sub.add_parser("list", help="List all rudiments and songs")
    ls.add_argument("-r", "--rudiments", action="store_true", help="List only rudiments")
    ls.add_argument("-s", "--songs", action="store_true", help="List only songs")
    ls.add_argument("-d", "--difficulty", choices=DIFFICULTIES, default=None, help="Filter by difficulty")

    de = db_sub.add_parser("delete", help="Delete a rudiment or song")
    de.add_argument("-r", "--rudiment", default=None, help="Delete rudiment by ID")
    de.add_argument("-s", "--song", default=None, help="Delete song by ID")
    de.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    return p


# -------------------------------
# Session commands
# -------------------------------
def cmd_metronome(args: argparse.Namespace) -> int:
    s = get_settings()
    tempo = s.default_tempo if args.tempo is None else int(args.tempo)
    subdivision = s.default_subdivision if args.subdivision is None else int(args.subdivision)

    orch = _orchestrator(args)
    orch.run_metronome(tempo, subdivision, int(args.duration))
    return EXIT_OK


def cmd_practice(args: argparse.Namespace) -> int:
    s = get_settings()
    minutes = s.practice_minutes if args.duration is None else int(args.duration)

    orch = _orchestrator(args, _store(args))
    rudiment = orch.select_rudiment(
        args.exercise,
        chooser=lambda entries: prompts.choose("Choose a practice exercise:", entries, _describe_rudiment),
    )
    orch.run_practice(rudiment, minutes)
    return EXIT_OK


def cmd_rhythm(args: argparse.Namespace) -> int:
    s = get_settings()
    minutes = s.rhythm_minutes if args.duration is None else int(args.duration)

    orch = _orchestrator(args, _store(args))
    song = orch.select_song(
        args.rhythm,
        chooser=lambda entries: prompts.choose("Choose a rhythm to practice:", entries, _describe_song),
    )
    orch.run_rhythm(song, minutes, tempo_override=args.tempo)
    return EXIT_OK


# -------------------------------
# Catalog commands
# -------------------------------
def cmd_db_init(args: argparse.Namespace) -> int:
    store = _store(args)
    if store.init(overwrite=bool(args.force)):
        print(f"Created catalog: {store.path}")
    else:
        print(f"Catalog already exists: {store.path} (use --force to overwrite)")
    return EXIT_OK


def cmd_db_add_rudiment(args: argparse.Namespace) -> int:
    fields = {
        "name": args.name or prompts.ask_text("Rudiment name:"),
        "description": args.description or prompts.ask_text("Description:"),
        "duration_minutes": args.duration if args.duration is not None else prompts.ask_int("Duration (minutes):", default=5),
        "difficulty": args.difficulty or prompts.ask_choice("Difficulty:", DIFFICULTIES),
        "url": args.url,
        "platform": args.platform,
    }
    rudiment = _store(args).rudiments.add(fields)
    print(f"Added rudiment: {rudiment.name}")
    print(f"ID: {rudiment.id}")
    return EXIT_OK


def cmd_db_add_song(args: argparse.Namespace) -> int:
    fields = {
        "title": args.title or prompts.ask_text("Song title:"),
        "artist": args.artist or prompts.ask_text("Artist:"),
        "description": args.description or prompts.ask_text("Description:"),
        "tempo_bpm": args.tempo if args.tempo is not None else prompts.ask_int("Tempo (BPM):", default=120),
        "length_seconds": args.length,
        "difficulty": args.difficulty or prompts.ask_choice("Difficulty:", DIFFICULTIES),
        "url": args.url,
        "platform": args.platform,
    }
    song = _store(args).songs.add(fields)
    print(f"Added song: {song.title} by {song.artist}")
    print(f"ID: {song.id}")
    return EXIT_OK


def _parse_assignments(items: List[str]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        key = key.strip().replace("-", "_")
        if not sep or not key:
            raise InvalidParameterError(f"Expected FIELD=VALUE, got '{item}'")
        changes[key] = value.strip() or None
    return changes


def cmd_db_update(args: argparse.Namespace) -> int:
    changes = _parse_assignments(args.assignments)
    if not changes:
        raise InvalidParameterError("Nothing to update (use --set FIELD=VALUE)")

    store = _store(args)
    collection: EntryCollection = store.rudiments if args.rudiment else store.songs
    entry_id = args.rudiment or args.song

    known = set((RudimentUpdate if args.rudiment else SongUpdate).model_fields)
    unknown = sorted(set(changes) - known)
    if unknown:
        raise InvalidParameterError(f"Unknown field(s): {', '.join(unknown)} (expected: {', '.join(sorted(known))})")
    updated = collection.update(entry_id, changes)
    if updated is None:
        raise EntryNotFoundError(f'{collection.key[:-1].capitalize()} with ID "{entry_id}" not found')
    print(f"Updated {collection.key[:-1]}: {updated.label}")
    return EXIT_OK


def cmd_db_list(args: argparse.Namespace) -> int:
    store = _store(args)
    both = not args.rudiments and not args.songs

    if args.rudiments or both:
        print("\nRudiments:")
        print("-" * 80)
        rudiments = store.rudiments.filter_by_difficulty(args.difficulty) if args.difficulty else store.rudiments.list_all()
        for r in rudiments:
            print(f"* {r.name}  [{r.id}]")
            print(f"  {r.description}")
            print(f"  Difficulty: {r.difficulty.value} | Duration: {r.duration_minutes}min")
            if r.url:
                print(f"  URL: {r.url}")
            print("")

    if args.songs or both:
        print("\nSongs:")
        print("-" * 80)
        songs = store.songs.filter_by_difficulty(args.difficulty) if args.difficulty else store.songs.list_all()
        for s in songs:
            print(f"* {s.title} by {s.artist}  [{s.id}]")
            print(f"  {s.description}")
            print(f"  Difficulty: {s.difficulty.value} | Tempo: {s.tempo_bpm} BPM")
            if s.url:
                print(f"  URL: {s.url}")
            print("")

    return EXIT_OK


def cmd_db_delete(args: argparse.Namespace) -> int:
    store = _store(args)
    if args.rudiment:
        collection: EntryCollection = store.rudiments
        entry_id = args.rudiment
    elif args.song:
        collection = store.songs
        entry_id = args.song
    else:
        raise InvalidParameterError("Please specify --rudiment <id> or --song <id>")

    kind = collection.key[:-1]
    entry = collection.get_by_id(entry_id)
    if entry is None:
        raise EntryNotFoundError(f'{kind.capitalize()} with ID "{entry_id}" not found')

    if not args.yes and not prompts.confirm(f'Delete {kind} "{entry.label}"?'):
        print("Cancelled")
        return EXIT_OK

    if collection.delete(entry_id):
        print(f"Deleted {kind}: {entry.label}")
        return EXIT_OK

    _print_err(f"Failed to delete {kind}")
    return EXIT_NOT_FOUND


_DB_COMMANDS = {
    "init": cmd_db_init,
    "add-rudiment": cmd_db_add_rudiment,
    "add-song": cmd_db_add_song,
    "update": cmd_db_update,
    "list": cmd_db_list,
    "delete": cmd_db_delete,
}


def _dispatch(args: argparse.Namespace) -> int:
    if args.cmd == "metronome":
        return cmd_metronome(args)
    if args.cmd == "practice":
        return cmd_practice(args)
    if args.cmd == "rhythm":
        return cmd_rhythm(args)
    if args.cmd == "db":
        handler = _DB_COMMANDS.get(args.db_cmd)
        if handler is not None:
            return handler(args)

    _print_err("Unknown command.")
    return EXIT_BAD_ARGS


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    s = get_settings()
    _configure_logging("DEBUG" if args.verbose else s.log_level)
    logger.debug("command=%s catalog=%s", args.cmd, args.catalog or s.catalog_path)

    try:
        return _dispatch(args)
    except InvalidParameterError as e:
        _print_err(f"Error: {e}")
        return EXIT_BAD_ARGS
    except EntryNotFoundError as e:
        _print_err(str(e))
        if e.available:
            _print_err("Available:")
            for name in e.available:
                _print_err(f"  - {name}")
        return EXIT_NOT_FOUND
    except StorageError as e:
        _print_err(str(e))
        return EXIT_STORAGE
    except DrummingError as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS
    except KeyboardInterrupt:
        # Ctrl-C at a prompt; sessions handle their own interrupts
        _print_err("\nAborted.")
        return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
