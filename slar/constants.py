# Conventional file extension (not enforced)
SLAR_EXTENSION = ".slar"

# Chunk size used when streaming entry content in and out of an archive
DEFAULT_COPY_CHUNK_SIZE = 81920  # 80 KiB

# Size codec: one count byte, so at most 255 magnitude bytes
SIZE_MAX_BYTES = 255

# Nullable string presence markers
STR_ABSENT = 0
STR_PRESENT = 1

# Decode-side safety bounds
MAX_STRING_BYTES = 64 * 1024 * 1024  # 64 MiB
MAX_LIST_COUNT = 10_000_000
