"""
SLAr: single-file lazy archives.

A .slar file packs named byte blobs ("entries") and free-form metadata tags
into one seekable file:

- Metadata tags (name, value, optional referenced entry) are read eagerly.
- Entry content is bound to bounded, read-only views of the archive file and
  is not read until it is extracted or read explicitly.
- No checksum, compression, or index: entries are found by a sequential scan.

All entries of an opened archive share one file handle; read them one at a
time, or use slar.reader.open_entry to get an independent handle per reader.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "archive",
    "entry",
    "metadata",
    "view",
    "writer",
    "reader",
]

# Importable programmatic API is available via slar.writer/slar.reader and
# the CLI functions in slar.cli (cmd_pack/cmd_unpack) which take normal parameters.
