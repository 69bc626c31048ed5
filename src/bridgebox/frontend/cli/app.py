"""
Command line interface for bridgebox.

Usage:
  bridgebox info
  bridgebox upload <path> [<path> ...] [--dest /]
  bridgebox download <bucket_id> <file_id> [-o out]
  bridgebox buckets list
  bridgebox buckets create <name>
  bridgebox buckets get <bucket_id>
  bridgebox buckets delete <bucket_id>
  bridgebox buckets public <bucket_id> [--push] [--pull]

Connection options come from BRIDGEBOX_* environment variables (see
bridgebox.config) and can be overridden with flags.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from bridgebox import __version__
from bridgebox.client import Client
from bridgebox.config import ClientConfig
from bridgebox.core.exceptions import BridgeBoxError
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bridgebox",
        description="Store and retrieve encrypted files through a bridge.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--bridge", default=None, help="Bridge base url (default: https://api.storj.io)")
    parser.add_argument("--protocol", default=None, help="Shard fetch protocol (default: http)")
    parser.add_argument("--bucket", dest="bucket_id", default=None, help="Bucket id for uploads")
    parser.add_argument("--key", dest="key_material", default=None, help="Master key (hex) for private buckets")
    parser.add_argument("--keypass", default=None, help="Passphrase that unlocks the bucket key")
    parser.add_argument("--user", dest="bridge_user", default=None, help="Bridge user")
    parser.add_argument("--password", dest="bridge_password", default=None, help="Bridge password")
    parser.add_argument("--store", choices=("memory", "fs"), default=None, help="Chunk store (default: memory)")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds per bridge round trip")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("info", help="Show bridge information")

    up = sub.add_parser("upload", help="Encrypt and upload files")
    up.add_argument("paths", nargs="+", help="Local files to upload")
    up.add_argument("--dest", default="/", help="Remote destination path (default: /)")
    up.add_argument("--concurrency", type=int, default=None, help="Files uploaded in parallel")

    down = sub.add_parser("download", help="Download and decrypt a file")
    down.add_argument("download_bucket", metavar="bucket_id")
    down.add_argument("file_id")
    down.add_argument("-o", "--output", default=None, help="Output path (default: <file_id>)")

    buckets = sub.add_parser("buckets", help="Bucket administration")
    bsub = buckets.add_subparsers(dest="bucket_command", required=True)
    bsub.add_parser("list", help="List buckets")
    create = bsub.add_parser("create", help="Create a bucket")
    create.add_argument("name")
    for name in ("get", "delete"):
        p = bsub.add_parser(name, help=f"{name.capitalize()} a bucket")
        p.add_argument("target_bucket", metavar="bucket_id")
    public = bsub.add_parser("public", help="Set public PUSH/PULL permissions")
    public.add_argument("target_bucket", metavar="bucket_id")
    public.add_argument("--push", action="store_true", help="Allow public uploads")
    public.add_argument("--pull", action="store_true", help="Allow public downloads")
    return parser


def _config_from_args(args: argparse.Namespace) -> ClientConfig:
    overrides = {
        "bridge": args.bridge,
        "protocol": args.protocol,
        "bucket_id": args.bucket_id,
        "key_material": args.key_material,
        "keypass": args.keypass,
        "bridge_user": args.bridge_user,
        "bridge_password": args.bridge_password,
        "store": args.store,
        "timeout": args.timeout,
    }
    if getattr(args, "concurrency", None):
        overrides["file_concurrency"] = args.concurrency
    return ClientConfig.from_env(**overrides)


async def cmd_upload(client: Client, paths: List[str], dest: str) -> int:
    handles = []
    try:
        for path in paths:
            handles.append((open(Path(path).expanduser(), "rb"), dest))
        results = await client.upload_many(handles)
    finally:
        for fh, _ in handles:
            fh.close()

    failed = 0
    for path, result in zip(paths, results):
        if result.ok:
            print(f"{path}: stored as {result.file.id} ({result.file.size} bytes, {result.file.mimetype})")
        else:
            failed += 1
            print(f"{path}: {result.error_kind.value} at {result.step}: {result.error}", file=sys.stderr)
    return 1 if failed else 0


async def cmd_download(client: Client, bucket_id: str, file_id: str, output: Optional[str]) -> int:
    out = Path(output or file_id).expanduser()
    part = out.with_name(out.name + ".part")
    try:
        with open(part, "wb") as f:
            async for chunk in client.stream(bucket_id, file_id):
                f.write(chunk)
    except BaseException:
        # never leave a partial plaintext behind
        part.unlink(missing_ok=True)
        raise
    part.replace(out)
    print(f"saved {file_id} to {out}")
    return 0


async def cmd_buckets(client: Client, args: argparse.Namespace) -> int:
    manager = client.buckets
    if args.bucket_command == "list":
        for bucket in await manager.get_buckets():
            print(f"- {bucket.name} (ID: {bucket.id})")
    elif args.bucket_command == "create":
        bucket = await manager.create_bucket(args.name)
        print(bucket.id)
    elif args.bucket_command == "get":
        bucket = await manager.get_bucket(args.target_bucket)
        print(json.dumps({
            "id": bucket.id,
            "name": bucket.name,
            "public": sorted(p.value for p in bucket.public_permissions),
            "files": [f.to_dict() for f in bucket.files],
        }, indent=2))
    elif args.bucket_command == "delete":
        await manager.delete_bucket(args.target_bucket)
        print(f"deleted {args.target_bucket}")
    elif args.bucket_command == "public":
        pub = await manager.make_public(args.target_bucket, push=args.push, pull=args.pull)
        print(f"{pub.name} ({pub.id}): pull={pub.pull} push={pub.push} key={pub.key or '-'}")
    return 0


async def _run(args: argparse.Namespace, config: ClientConfig) -> int:
    async with Client(config) as client:
        if args.command == "info":
            print(json.dumps(await client.get_info(), indent=2))
            return 0
        if args.command == "upload":
            return await cmd_upload(client, args.paths, args.dest)
        if args.command == "download":
            return await cmd_download(client, args.download_bucket, args.file_id, args.output)
        if args.command == "buckets":
            return await cmd_buckets(client, args)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = _config_from_args(args)
        return asyncio.run(_run(args, config))
    except BridgeBoxError as e:
        kind = e.kind.value
        where = f" at {e.step}" if e.step else ""
        print(f"error: {kind}{where}: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
