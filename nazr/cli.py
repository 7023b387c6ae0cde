"""
Command-line interface for nazr.
Album management works offline against the local album file; the other
commands talk to the gallery API.
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .albums import AlbumStore
from .bulk import BulkResult, DeleteAssets
from .config import AppConfig
from .exceptions import ValidationError
from .gallery import GalleryCore
from .logging_config import configure_logging
from .models import Album
from .storage import JsonFileBackend


def load_config(args) -> AppConfig:
    """Build config from --config plus command-line overrides."""
    config = AppConfig.from_yaml(args.config) if args.config else AppConfig.from_env()
    overrides = {}
    if args.albums_path:
        overrides["albums_path"] = Path(args.albums_path)
    if args.api_url:
        overrides["api_base_url"] = args.api_url.rstrip("/")
    if args.log_level:
        overrides["log_level"] = args.log_level
    return replace(config, **overrides) if overrides else config


def format_timestamp(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M")


def print_album(album: Album, verbose: bool = False) -> None:
    print(f"{album.id}  {album.name}  ({album.size} items)")
    if verbose:
        if album.description:
            print(f"  Description: {album.description}")
        print(f"  Created:     {format_timestamp(album.created_at)}")
        print(f"  Updated:     {format_timestamp(album.updated_at)}")
        if album.asset_ids:
            print(f"  Assets:      {', '.join(str(a) for a in album.asset_ids)}")


def print_bulk_result(result: BulkResult) -> None:
    print(result.message)
    for failure in result.failures:
        label = f"asset {failure.asset_id}" if failure.asset_id is not None else "item"
        print(f"  - {label}: {failure.error}")


def run_albums_command(args, config: AppConfig) -> int:
    """Album CRUD against the local album store."""
    store = AlbumStore(JsonFileBackend(config.albums_path))

    if args.albums_command == "list":
        albums = store.list()
        if not albums:
            print("No albums")
        for album in albums:
            print_album(album)
        return 0

    if args.albums_command == "create":
        album = store.create(args.name, args.description)
        print_album(album, verbose=True)
        return 0

    if args.albums_command == "containing":
        for album in store.albums_containing(args.asset_id):
            print_album(album)
        return 0

    if args.albums_command == "show":
        album = store.get(args.album_id)
    elif args.albums_command == "update":
        album = store.update(args.album_id, name=args.name, description=args.description)
    elif args.albums_command == "add":
        album = store.add_assets(args.album_id, args.asset_ids)
    elif args.albums_command == "remove":
        album = store.remove_assets(args.album_id, args.asset_ids)
    elif args.albums_command == "delete":
        if not store.delete(args.album_id):
            print(f"Album not found: {args.album_id}", file=sys.stderr)
            return 1
        print(f"Deleted album {args.album_id}")
        return 0
    else:
        raise ValueError(f"Unknown albums command: {args.albums_command}")

    if album is None:
        print(f"Album not found: {args.album_id}", file=sys.stderr)
        return 1
    print_album(album, verbose=True)
    return 0


async def run_api_command(args, config: AppConfig) -> int:
    """Commands that need the gallery API."""
    core = GalleryCore.from_config(config)
    try:
        if args.command == "resolve":
            view = await core.ensure_album_resolved(args.album_id)
            if view is None:
                print(f"Album not found: {args.album_id}", file=sys.stderr)
                return 1
            print(f"{view.album.name}: {len(view.assets)} of {view.album.size} assets resolved "
                  f"({view.fetches} pages fetched)")
            for asset in view.assets:
                print(f"  {asset.id}  {asset.filename}")
            if view.missing_ids:
                print(f"  Missing: {', '.join(str(a) for a in view.missing_ids)}")
            return 0

        if args.command == "delete":
            permanent = args.permanent or config.delete_permanently
            result = await core.apply_bulk(DeleteAssets(permanent=permanent), args.asset_ids)
        elif args.command == "unassign":
            result = await core.unassign_from_person(args.person, args.asset_ids)
        elif args.command == "merge":
            result = await core.merge_person(args.source, args.target)
        else:
            raise ValueError(f"Unknown command: {args.command}")

        print_bulk_result(result)
        return 1 if result.all_failed else 0
    finally:
        await core.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nazr",
        description="Manage local albums and apply bulk gallery actions",
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--albums-path", help="Album store file (overrides config)")
    parser.add_argument("--api-url", help="Gallery API base URL (overrides config)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    subparsers = parser.add_subparsers(dest="command", required=True)

    albums = subparsers.add_parser("albums", help="Manage albums")
    album_cmds = albums.add_subparsers(dest="albums_command", required=True)
    album_cmds.add_parser("list", help="List albums")

    show = album_cmds.add_parser("show", help="Show one album")
    show.add_argument("album_id")

    create = album_cmds.add_parser("create", help="Create an album")
    create.add_argument("name")
    create.add_argument("--description")

    update = album_cmds.add_parser("update", help="Rename or describe an album")
    update.add_argument("album_id")
    update.add_argument("--name")
    update.add_argument("--description")

    delete = album_cmds.add_parser("delete", help="Delete an album")
    delete.add_argument("album_id")

    for name, help_text in (("add", "Add assets to an album"), ("remove", "Remove assets from an album")):
        cmd = album_cmds.add_parser(name, help=help_text)
        cmd.add_argument("album_id")
        cmd.add_argument("asset_ids", nargs="+", type=int)

    containing = album_cmds.add_parser("containing", help="Albums that contain an asset")
    containing.add_argument("asset_id", type=int)

    resolve = subparsers.add_parser("resolve", help="Resolve an album against the gallery")
    resolve.add_argument("album_id")

    delete_assets = subparsers.add_parser("delete", help="Delete assets")
    delete_assets.add_argument("asset_ids", nargs="+", type=int)
    delete_assets.add_argument("--permanent", action="store_true", help="Also delete original files")

    unassign = subparsers.add_parser("unassign", help="Unassign a person's faces from assets")
    unassign.add_argument("--person", type=int, required=True)
    unassign.add_argument("asset_ids", nargs="+", type=int)

    merge = subparsers.add_parser("merge", help="Merge one person into another")
    merge.add_argument("--source", type=int, required=True)
    merge.add_argument("--target", type=int, required=True)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args)
    configure_logging(config)

    try:
        if args.command == "albums":
            return run_albums_command(args, config)
        return asyncio.run(run_api_command(args, config))
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
