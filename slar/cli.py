from __future__ import annotations

import os
import sys
import time
import argparse

from typing import List, Optional

from slar.constants import SLAR_EXTENSION
from slar.errors import MalformedLengthError, MalformedValueError, OutOfRangeError, SlarError
from slar.metadata import MetaTag
from slar.pathutil import strip_prefix
from slar.reader import open_archive
from slar.writer import ArchiveBuilder, iter_files


def _parse_tag(text: str) -> MetaTag:
    """Parse ``NAME=VALUE`` into an archive-scoped tag."""
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise ValueError(f"Bad tag {text!r}; expected NAME=VALUE")
    return MetaTag(name=name, value=value)


def _parse_entry_tag(text: str) -> MetaTag:
    """Parse ``ENTRY:NAME=VALUE`` into a tag that references ENTRY."""
    entry, sep, rest = text.partition(":")
    if not sep or not entry:
        raise ValueError(f"Bad entry tag {text!r}; expected ENTRY:NAME=VALUE")
    tag = _parse_tag(rest)
    return MetaTag(name=tag.name, value=tag.value, referenced_entry=entry)


def cmd_pack(
    output: str,
    inputs: List[str],
    *,
    tags: Optional[List[str]] = None,
    entry_tags: Optional[List[str]] = None,
    quiet: bool = False,
) -> bool:
    """Pack files and directories into a new archive.

    Args:
        output: Path to the .slar file to write.
        inputs: Files and/or directories. Directory contents are stored with
            names relative to the directory; plain files under their basename.
        tags: Archive tags as ``NAME=VALUE``.
        entry_tags: Entry tags as ``ENTRY:NAME=VALUE``.
        quiet: Only print the summary line.
    """
    metadata = [_parse_tag(t) for t in tags or []]
    metadata += [_parse_entry_tag(t) for t in entry_tags or []]
    if not output.lower().endswith(SLAR_EXTENSION):
        print(f"Warning: {output} does not use the conventional {SLAR_EXTENSION} extension", file=sys.stderr)

    t0 = time.time()
    with ArchiveBuilder(metadata) as builder:
        for p in inputs:
            if os.path.isdir(p):
                for full in iter_files(p):
                    name = strip_prefix(full, p)
                    builder.add_file(name, full)
                    if not quiet:
                        print(f"   adding: {name}")
            else:
                name = os.path.basename(p)
                builder.add_file(name, p)
                if not quiet:
                    print(f"   adding: {name}")
        archive = builder.build()

    with archive:
        total_bytes = sum(e.length for e in archive)
        archive.write(output)
        n_files = len(archive)

    dt = max(0.000001, time.time() - t0)
    mib = total_bytes / (1024.0 * 1024.0)
    print(f"Done: {n_files} files, {len(metadata)} tags; {mib:.2f} MiB in {dt:.1f}s")
    return True


def cmd_unpack(archive: str, *, outdir: str = ".", quiet: bool = False) -> bool:
    """Extract every entry of an archive below ``outdir``."""
    t0 = time.time()
    with open_archive(archive) as a:
        total = len(a)
        total_bytes = sum(e.length for e in a)

        def _progress(i: int, e) -> None:
            if not quiet:
                print(f" unpacking: {i + 1:>4}/{total:<4} {e.name}")

        a.extract(outdir or ".", on_entry=_progress)
    dt = max(0.000001, time.time() - t0)
    mib = total_bytes / (1024.0 * 1024.0)
    print(f"Done: extracted {total} files ({mib:.2f} MiB) in {dt:.1f}s")
    return True


def cmd_list(archive: str) -> bool:
    """List archive entries as ``size<TAB>name``."""
    with open_archive(archive) as a:
        for e in a:
            print(f"{e.length}\t{e.name}")
    return True


def cmd_info(archive: str) -> bool:
    """Show entry counts and metadata tags."""
    with open_archive(archive) as a:
        print(f"Archive: {archive}")
        print(f"  Entries: {len(a)}")
        print(f"  Total bytes: {sum(e.length for e in a)}")
        print(f"  Tags: {len(a.metadata)}")
        for tag in a.metadata:
            if tag.referenced_entry is None:
                print(f"    {tag.name} = {tag.value}")
            else:
                print(f"    {tag.name} = {tag.value} [{tag.referenced_entry}]")
        dangling = sorted(
            {t.referenced_entry for t in a.metadata if t.referenced_entry is not None} - set(a.names)
        )
        for name in dangling:
            print(f"Warning: tags reference missing entry {name!r}", file=sys.stderr)
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="slar",
        description="SLAr .slar archive tool",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Pack files into a new archive")
    ap_pack.add_argument("output", help="Output .slar path")
    ap_pack.add_argument("inputs", nargs="+", help="Input files/directories")
    ap_pack.add_argument("--tag", action="append", default=[], metavar="NAME=VALUE", help="Archive metadata tag (repeatable)")
    ap_pack.add_argument(
        "--entry-tag",
        action="append",
        default=[],
        metavar="ENTRY:NAME=VALUE",
        help="Metadata tag attached to one entry (repeatable)",
    )
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_unpack = sub.add_parser("unpack", help="Extract all entries")
    ap_unpack.add_argument("archive", help="Archive path")
    ap_unpack.add_argument("--outdir", default=".", help="Output directory")
    ap_unpack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    ap_info = sub.add_parser("info", help="Show archive information and tags")
    ap_info.add_argument("archive", help="Archive path")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "pack":
            cmd_pack(args.output, args.inputs, tags=args.tag, entry_tags=args.entry_tag, quiet=args.quiet)
        elif args.cmd == "unpack":
            cmd_unpack(args.archive, outdir=args.outdir, quiet=args.quiet)
        elif args.cmd == "list":
            cmd_list(args.archive)
        elif args.cmd == "info":
            cmd_info(args.archive)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (MalformedLengthError, MalformedValueError, OutOfRangeError) as e:
        print(
            f"Error: {e}\n"
            "Archive appears truncated or corrupted; .slar files carry no checksum, so the damage cannot be located.",
            file=sys.stderr,
        )
        sys.exit(2)
    except (SlarError, ValueError, RuntimeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
