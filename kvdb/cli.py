from __future__ import annotations

"""
kvdb.cli
========

Small operator CLI over any registered backend.

Usage:
    python -m kvdb --backend sqlite --dir ./data --name state set acct/1 0x01ff
    python -m kvdb --uri sqlite:///data/state get acct/1
    python -m kvdb --uri sqlite:///data/state scan --prefix acct/ --reverse
    python -m kvdb --uri sqlite:///data/state dump
    python -m kvdb --uri sqlite:///data/state stats

Keys and values are UTF-8 text, or hex when prefixed with `0x`.
Store selection falls back to `kvdb.config` (env / --config file) when
--uri is not given.
"""

import argparse
import json
import sys
from typing import Optional

from . import config as kconfig
from . import logging as klog
from . import open_db, open_from_config
from .errors import KVError
from .kv import DB, iter_items, iter_prefixed

log = klog.get_logger("kvdb.cli")


def _arg_bytes(s: str) -> bytes:
    if s.startswith(("0x", "0X")):
        try:
            return bytes.fromhex(s[2:])
        except ValueError as e:
            raise argparse.ArgumentTypeError(f"invalid hex: {s!r}") from e
    return s.encode("utf-8")


def _hex(b: bytes) -> str:
    return "0x" + b.hex()


def _setup(args: argparse.Namespace) -> Optional[kconfig.DBConfig]:
    """Load the config (unless --uri was given) and configure logging from it."""
    cfg = None
    if not args.uri:
        try:
            cfg = kconfig.load(args.config, backend=args.backend, name=args.name, dir=args.dir)
        except KVError:
            klog.configure(json=False, level=args.log or "WARNING")
            raise
    if args.log or cfg is None:
        klog.configure(json=False, level=args.log or "WARNING")
    else:
        klog.configure_from_config(cfg)
    return cfg


def _open(args: argparse.Namespace, cfg: Optional[kconfig.DBConfig]) -> DB:
    if cfg is None:
        return open_db(args.uri)
    return open_from_config(cfg)


def _cmd_get(db: DB, args: argparse.Namespace) -> int:
    v = db.get(args.key)
    if v is None:
        print("not found", file=sys.stderr)
        return 1
    print(_hex(v))
    return 0


def _cmd_set(db: DB, args: argparse.Namespace) -> int:
    if args.sync:
        db.set_sync(args.key, args.value)
    else:
        db.set(args.key, args.value)
    return 0


def _cmd_delete(db: DB, args: argparse.Namespace) -> int:
    if args.sync:
        db.delete_sync(args.key)
    else:
        db.delete(args.key)
    return 0


def _cmd_scan(db: DB, args: argparse.Namespace) -> int:
    if args.prefix is not None:
        items = iter_prefixed(db, args.prefix, reverse=args.reverse)
    else:
        items = iter_items(db, args.start, args.end, reverse=args.reverse)
    n = 0
    for k, v in items:
        if args.limit and n >= args.limit:
            break
        print(f"{_hex(k)}\t{_hex(v)}")
        n += 1
    return 0


def _cmd_dump(db: DB, args: argparse.Namespace) -> int:
    db.print(sys.stdout)
    return 0


def _cmd_stats(db: DB, args: argparse.Namespace) -> int:
    print(json.dumps(db.stats(), indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kvdb",
        description="Inspect and edit a kvdb store.",
    )
    ap.add_argument("--uri", type=str, default=None, help="Store URI (overrides config)")
    ap.add_argument("--config", type=str, default=None, help="TOML/JSON config file")
    ap.add_argument("--backend", type=str, default=None, help="memdb | sqlite | rocksdb")
    ap.add_argument("--dir", type=str, default=None, help="Data directory")
    ap.add_argument("--name", type=str, default=None, help="Store name")
    ap.add_argument(
        "--log", type=str, default=None, help="Log level (default: config log_level, or WARNING with --uri)"
    )

    sub = ap.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("get", help="print a value (hex)")
    p.add_argument("key", type=_arg_bytes)
    p.set_defaults(func=_cmd_get)

    p = sub.add_parser("set", help="store a value")
    p.add_argument("key", type=_arg_bytes)
    p.add_argument("value", type=_arg_bytes)
    p.add_argument("--sync", action="store_true", help="durable before returning")
    p.set_defaults(func=_cmd_set)

    p = sub.add_parser("delete", help="remove a key")
    p.add_argument("key", type=_arg_bytes)
    p.add_argument("--sync", action="store_true", help="durable before returning")
    p.set_defaults(func=_cmd_delete)

    p = sub.add_parser("scan", help="list entries in a range or under a prefix")
    p.add_argument("--start", type=_arg_bytes, default=None)
    p.add_argument("--end", type=_arg_bytes, default=None)
    p.add_argument("--prefix", type=_arg_bytes, default=None)
    p.add_argument("--reverse", action="store_true")
    p.add_argument("--limit", type=int, default=0)
    p.set_defaults(func=_cmd_scan)

    p = sub.add_parser("dump", help="print every entry as [KEY]:\\t[VALUE]")
    p.set_defaults(func=_cmd_dump)

    p = sub.add_parser("stats", help="print engine statistics as JSON")
    p.set_defaults(func=_cmd_stats)
    return ap


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    with klog.scope(component="cli", command=args.cmd):
        try:
            db = _open(args, _setup(args))
        except (KVError, ValueError) as e:
            log.error("cannot open store: %s", e)
            return 2

        with db:
            try:
                return args.func(db, args)
            except KVError as e:
                log.error("%s", e, extra={"code": str(getattr(e.code, "value", e.code))})
                return 2


if __name__ == "__main__":
    raise SystemExit(main())
