from __future__ import annotations

import io
import os
import tempfile
import unittest
from pathlib import Path
from typing import Dict

from slar.archive import Archive
from slar.entry import EntryInfo
from slar.errors import MalformedLengthError, MalformedValueError, OutOfRangeError, SlarError
from slar.metadata import MetaTag
from slar.reader import extract_file, open_archive, open_entry
from slar.writer import (
    ArchiveBuilder,
    build,
    build_from_directory,
    build_from_pairs,
    build_from_paths,
    write_archive,
)


class CountingIO(io.BytesIO):
    """BytesIO that counts the bytes handed out by read()."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.bytes_read = 0

    def read(self, n=-1):
        data = super().read(n)
        self.bytes_read += len(data)
        return data


def _sample_archive() -> Archive:
    return build(
        [
            ("a.txt", io.BytesIO(b"abc")),
            ("dir/b.txt", io.BytesIO(b"")),
        ],
        [
            MetaTag("info", "hello"),
            MetaTag("note", "x", "a.txt"),
        ],
    )


def _serialized(archive: Archive) -> bytes:
    buf = io.BytesIO()
    archive.serialize(buf)
    return buf.getvalue()


def _create_sample_files(base: Path) -> Dict[str, bytes]:
    files = {
        "notes.md": b"# Title\nSome content\n",
        "docs/a.txt": b"hello world\n" * 50,
        "docs/deep/b.bin": os.urandom(4096),
        "docs/empty.txt": b"",
    }
    for name, data in files.items():
        p = base / name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
    return files


class ArchiveFormatTests(unittest.TestCase):
    def test_wire_layout(self):
        archive = build([("a", io.BytesIO(b"xy"))], [MetaTag("k", "v")])
        expected = bytes(
            [
                0x01,  # tag count
                0x01, ord("k"),  # name
                0x01, ord("v"),  # value
                0x00,  # no referenced entry
                0x01,  # entry count
                0x01, 0x01, ord("a"),  # present, len, name
                0x01, 0x02,  # size codec
            ]
        ) + b"xy"
        self.assertEqual(_serialized(archive), expected)

    def test_empty_archive(self):
        data = _serialized(Archive())
        self.assertEqual(data, b"\x00\x00")
        with Archive.deserialize(io.BytesIO(data)) as a:
            self.assertEqual(len(a), 0)
            self.assertEqual(a.metadata, [])

    def test_length_beyond_any_offset_rejected(self):
        # No tags, one unnamed entry whose 9-byte size field holds 2**64
        data = b"\x00\x01\x00" + b"\x09" + (2**64).to_bytes(9, "big")
        with self.assertRaises(MalformedLengthError):
            Archive.deserialize(io.BytesIO(data))

    def test_entries_back_to_back_in_order(self):
        archive = build([("one", io.BytesIO(b"1111")), ("two", io.BytesIO(b"22"))])
        data = _serialized(archive)
        self.assertTrue(data.endswith(b"\x01\x03two\x01\x02" + b"22"))
        self.assertIn(b"\x01\x03one\x01\x04" + b"1111" + b"\x01\x03two", data)

    def test_roundtrip_with_empty_and_large_entries(self):
        def scenario(tmp_path: Path):
            big = os.urandom(300)
            huge = os.urandom(70_000)
            files = {"empty": b"", "big.bin": big, "nested/huge.bin": huge, "small.txt": b"hi"}
            archive = build([(name, io.BytesIO(data)) for name, data in files.items()])
            data = _serialized(archive)
            # 300 bytes needs a two-byte magnitude
            self.assertIn(b"\x01\x07big.bin\x02\x01\x2c", data)
            with Archive.deserialize(io.BytesIO(data)) as a:
                self.assertEqual(a.names, list(files))
                a.extract(str(tmp_path / "out"), chunk_size=4096)
            for name, content in files.items():
                self.assertEqual((tmp_path / "out" / name).read_bytes(), content)

        with tempfile.TemporaryDirectory() as tmp:
            scenario(Path(tmp))

    def test_deserialize_reads_no_entry_content(self):
        contents = [b"a" * 10, b"", os.urandom(1000), b"z" * 256]
        archive = build([(f"e{i}", io.BytesIO(c)) for i, c in enumerate(contents)], [MetaTag("k", "v")])
        data = _serialized(archive)
        src = CountingIO(data)
        a = Archive.deserialize(src)
        header_bytes = len(data) - sum(len(c) for c in contents)
        self.assertEqual(src.bytes_read, header_bytes)
        self.assertEqual([e.length for e in a], [len(c) for c in contents])
        self.assertEqual(a[2].read_bytes(), contents[2])
        self.assertEqual(src.bytes_read, header_bytes + len(contents[2]))
        a.close()

    def test_entry_info_and_open(self):
        with Archive.deserialize(io.BytesIO(_serialized(_sample_archive()))) as a:
            e = a.entry_at(0)
            self.assertEqual(e.info, EntryInfo(name="a.txt", length=3))
            self.assertFalse(e.owned)
            stream = e.open()
            self.assertEqual(stream.read(2), b"ab")
            self.assertEqual(e.open().read(), b"abc")


class ArchiveQueryTests(unittest.TestCase):
    def setUp(self):
        self.archive = Archive.deserialize(io.BytesIO(_serialized(_sample_archive())))
        self.addCleanup(self.archive.close)

    def test_lookup_by_index(self):
        self.assertEqual(self.archive.entry_at(1).name, "dir/b.txt")
        self.assertEqual(self.archive[0].name, "a.txt")
        with self.assertRaises(OutOfRangeError):
            self.archive.entry_at(2)
        with self.assertRaises(OutOfRangeError):
            self.archive.entry_at(-1)
        with self.assertRaises(IndexError):
            self.archive[5]

    def test_lookup_by_name(self):
        self.assertEqual(self.archive.find("dir/b.txt").length, 0)
        self.assertIsNone(self.archive.find("missing.txt"))
        self.assertIsNone(self.archive.find("A.TXT"))
        with self.assertRaises(KeyError):
            self.archive["missing.txt"]

    def test_lookup_by_name_returns_first_duplicate(self):
        a = build([("same", io.BytesIO(b"first")), ("same", io.BytesIO(b"second"))])
        with a:
            self.assertEqual(a.find("same").read_bytes(), b"first")

    def test_tag_queries(self):
        tag = self.archive.get_tag("info")
        self.assertEqual(tag.value, "hello")
        self.assertIsNone(tag.referenced_entry)
        self.assertEqual(self.archive.get_tag("note").value, "x")
        self.assertEqual(self.archive.get_tag("note", "a.txt").value, "x")
        self.assertIsNone(self.archive.get_tag("note", "dir/b.txt"))
        self.assertIsNone(self.archive.get_tag("absent"))
        tags = self.archive.tags_for_entry("a.txt")
        self.assertEqual(tags, [MetaTag("note", "x", "a.txt")])
        self.assertEqual(self.archive.archive_tags(), [MetaTag("info", "hello")])

    def test_archive_tag_preferred_when_listed_first(self):
        a = Archive(
            metadata=[
                MetaTag("info", "archive"),
                MetaTag("info", "entry", "a.txt"),
                MetaTag("other", "1", "a.txt"),
                MetaTag("third", "2", "b.txt"),
                MetaTag("last", "3", "a.txt"),
            ]
        )
        self.assertEqual(a.get_tag("info").value, "archive")
        self.assertEqual(a.get_tag("info", "a.txt").value, "entry")
        self.assertEqual([t.name for t in a.tags_for_entry("a.txt")], ["info", "other", "last"])
        self.assertEqual(a.tags_for_entry("nope"), [])

    def test_archive_tag_wins_over_earlier_entry_tag(self):
        a = Archive(
            metadata=[
                MetaTag("info", "entry", "a.txt"),
                MetaTag("info", "hello"),
                MetaTag("only", "scoped", "b.txt"),
            ]
        )
        tag = a.get_tag("info")
        self.assertEqual(tag.value, "hello")
        self.assertIsNone(tag.referenced_entry)
        self.assertEqual(a.get_tag("info", "a.txt").value, "entry")
        # No archive-scoped tag of that name: the first entry-scoped one
        self.assertEqual(a.get_tag("only").value, "scoped")


class ArchiveFileTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_end_to_end_scenario(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "sample.slar"
            with _sample_archive() as archive:
                write_archive(archive, str(path))
            out = tmp_path / "D"
            with open_archive(str(path)) as a:
                written = a.extract(str(out))
                self.assertEqual(len(written), 2)
                self.assertEqual(a.get_tag("info").value, "hello")
                tags = a.tags_for_entry("a.txt")
                self.assertEqual(len(tags), 1)
                self.assertEqual((tags[0].name, tags[0].value), ("note", "x"))
            self.assertEqual((out / "a.txt").read_bytes(), b"abc")
            self.assertTrue((out / "dir" / "b.txt").is_file())
            self.assertEqual((out / "dir" / "b.txt").stat().st_size, 0)

        self.run_with_tmpdir(scenario)

    def test_directory_roundtrip(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            files = _create_sample_files(src)
            archive_path = tmp_path / "tree.slar"
            meta = [MetaTag("origin", "unit-test"), MetaTag("kind", "notes", "notes.md")]
            with build_from_directory(str(src), meta) as archive:
                self.assertEqual(sorted(archive.names), sorted(files))
                self.assertTrue(all(e.owned for e in archive))
                archive.write(str(archive_path))
            with build_from_directory(str(src)) as again:
                self.assertEqual(again.names, archive.names)
            out = tmp_path / "out"
            extract_file(str(archive_path), str(out))
            for name, data in files.items():
                self.assertEqual((out / name).read_bytes(), data)
            with open_archive(str(archive_path)) as a:
                self.assertEqual(a.get_tag("kind", "notes.md").value, "notes")

        self.run_with_tmpdir(scenario)

    def test_build_from_paths_strips_prefix(self):
        def scenario(tmp_path: Path):
            _create_sample_files(tmp_path / "root")
            paths = [str(tmp_path / "root" / "docs" / "a.txt"), str(tmp_path / "root" / "notes.md")]
            with build_from_paths(paths, strip_prefix=str(tmp_path / "root")) as a:
                self.assertEqual(a.names, ["docs/a.txt", "notes.md"])
            with self.assertRaises(ValueError):
                build_from_paths([str(tmp_path / "root" / "notes.md")], strip_prefix=str(tmp_path / "other"))

        self.run_with_tmpdir(scenario)

    def test_build_from_pairs(self):
        def scenario(tmp_path: Path):
            (tmp_path / "x.bin").write_bytes(b"xyz")
            with build_from_pairs([("renamed/x.bin", str(tmp_path / "x.bin"))]) as a:
                self.assertEqual(a["renamed/x.bin"].read_bytes(), b"xyz")

        self.run_with_tmpdir(scenario)

    def test_failed_build_closes_opened_handles(self):
        def scenario(tmp_path: Path):
            (tmp_path / "ok.txt").write_bytes(b"ok")
            with self.assertRaises(FileNotFoundError):
                with ArchiveBuilder() as builder:
                    first = builder.add_file("ok.txt", str(tmp_path / "ok.txt"))
                    builder.add_file("missing.txt", str(tmp_path / "missing.txt"))
            self.assertTrue(first.source.stream.closed)
            self.assertEqual(builder.entries, [])
            with self.assertRaises(FileNotFoundError):
                build_from_pairs([("ok.txt", str(tmp_path / "ok.txt")), ("m", str(tmp_path / "missing"))])

        self.run_with_tmpdir(scenario)

    def test_failed_write_leaves_no_partial_archive(self):
        def scenario(tmp_path: Path):
            src = io.BytesIO(b"abcdef")
            archive = build([("a", src)])
            # Source shrinks after its length was measured
            src.truncate(2)
            fresh = tmp_path / "fresh.slar"
            with self.assertRaises(SlarError):
                archive.write(str(fresh))
            self.assertFalse(fresh.exists())

            existing = tmp_path / "existing.slar"
            existing.write_bytes(b"previous")
            with self.assertRaises(SlarError):
                archive.write(str(existing))
            self.assertEqual(existing.read_bytes(), b"previous")
            self.assertEqual(sorted(p.name for p in tmp_path.iterdir()), ["existing.slar"])
            archive.close()

        self.run_with_tmpdir(scenario)

    def test_write_replaces_existing_file(self):
        def scenario(tmp_path: Path):
            target = tmp_path / "out.slar"
            target.write_bytes(b"stale")
            with build([("a", io.BytesIO(b"xy"))]) as archive:
                archive.write(str(target))
            with open_archive(str(target)) as a:
                self.assertEqual(a["a"].read_bytes(), b"xy")
            self.assertEqual(sorted(p.name for p in tmp_path.iterdir()), ["out.slar"])

        self.run_with_tmpdir(scenario)

    def test_builder_tags_and_reuse(self):
        builder = ArchiveBuilder()
        builder.add_stream("a", io.BytesIO(b"1"))
        builder.add_tag("author", "me")
        builder.add_tag("mime", "text/plain", "a")
        archive = builder.build()
        with self.assertRaises(RuntimeError):
            builder.add_tag("late", "x")
        with self.assertRaises(RuntimeError):
            builder.build()
        with archive:
            self.assertEqual(archive.get_tag("mime", "a").value, "text/plain")

    def test_close_semantics(self):
        streams = [io.BytesIO(b"a"), io.BytesIO(b"b")]
        built = build([("a", streams[0]), ("b", streams[1])])
        data = _serialized(built)
        built.close()
        built.close()
        self.assertTrue(all(s.closed for s in streams))

        src = io.BytesIO(data)
        opened = Archive.deserialize(src)
        entry = opened[0]
        opened.close()
        self.assertTrue(src.closed)
        with self.assertRaises(ValueError):
            entry.read_bytes()

    def test_extract_rejects_parent_segments(self):
        def scenario(tmp_path: Path):
            data = _serialized(build([("../evil.txt", io.BytesIO(b"x"))]))
            out = tmp_path / "out"
            with Archive.deserialize(io.BytesIO(data)) as a:
                with self.assertRaises(ValueError):
                    a.extract(str(out))
            self.assertFalse((tmp_path / "evil.txt").exists())

        self.run_with_tmpdir(scenario)

    def test_extract_normalizes_backslashes_and_leading_slash(self):
        def scenario(tmp_path: Path):
            data = _serialized(build([("/top/a.txt", io.BytesIO(b"1")), ("win\\b.txt", io.BytesIO(b"2"))]))
            out = tmp_path / "out"
            with Archive.deserialize(io.BytesIO(data)) as a:
                a.extract(str(out))
            self.assertEqual((out / "top" / "a.txt").read_bytes(), b"1")
            self.assertEqual((out / "win" / "b.txt").read_bytes(), b"2")

        self.run_with_tmpdir(scenario)

    def test_truncated_archive(self):
        def scenario(tmp_path: Path):
            data = _serialized(build([("a.bin", io.BytesIO(b"0123456789"))], [MetaTag("k", "value")]))
            # Content cut short: the table still parses, extraction fails
            cut = tmp_path / "cut.slar"
            cut.write_bytes(data[:-4])
            with open_archive(str(cut)) as a:
                self.assertEqual(a[0].length, 10)
                with self.assertRaises(OutOfRangeError):
                    a.extract(str(tmp_path / "out"))
            # Header cut short
            head = tmp_path / "head.slar"
            head.write_bytes(data[:4])
            with self.assertRaises(MalformedValueError):
                open_archive(str(head))
            # Size field cut short
            size_cut = tmp_path / "size.slar"
            size_cut.write_bytes(data[: data.index(b"a.bin") + len(b"a.bin") + 1])
            with self.assertRaises(MalformedLengthError):
                open_archive(str(size_cut))
            with self.assertRaises(SlarError):
                open_archive(str(size_cut))

        self.run_with_tmpdir(scenario)

    def test_independent_entry_handles(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "two.slar"
            with build([("a", io.BytesIO(b"A" * 100)), ("b", io.BytesIO(b"B" * 50))]) as archive:
                archive.write(str(path))
            va = open_entry(str(path), 0)
            vb = open_entry(str(path), 1)
            try:
                self.assertEqual(va.read(10), b"A" * 10)
                self.assertEqual(vb.read(10), b"B" * 10)
                self.assertEqual(va.read(), b"A" * 90)
                self.assertEqual(vb.read(), b"B" * 40)
            finally:
                va.close()
                vb.close()
            self.assertTrue(va.parent.closed)
            with self.assertRaises(OutOfRangeError):
                open_entry(str(path), 2)

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()
