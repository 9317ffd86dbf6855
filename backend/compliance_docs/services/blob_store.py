import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Raw document bytes on the local filesystem.

    Every write goes to a fresh, generated name, so concurrent uploads never
    contend for the same path and no locking is needed.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def write(self, name: str, content: bytes) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / name
        path.write_bytes(content)
        logger.debug("Stored %d bytes at %s", len(content), path)
        return str(path)

    def exists(self, path: str) -> bool:
        return Path(path).is_file()

    def read(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def delete(self, path: str) -> None:
        Path(path).unlink(missing_ok=True)

    def size(self, path: str) -> int:
        p = Path(path)
        return p.stat().st_size if p.is_file() else 0
