import hashlib
from pathlib import Path

HASH_CHUNK_SIZE = 64 * 1024


def compute_file_hash(path: Path) -> str:
    """Stream a file through SHA-256 and return the lowercase hex digest.

    Identical bytes always produce the same digest, whatever the file name.

    Raises:
        OSError: if the file cannot be opened or a read fails mid-stream.
    """
    digest = hashlib.sha256()
    try:
        with path.open("rb") as f:
            for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as exc:
        raise OSError(f"Failed to hash {path}: {exc}") from exc
    return digest.hexdigest()
