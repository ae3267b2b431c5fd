import logging
import os
import shutil
import tempfile
from pathlib import Path

from medialib.errors import StorageFailure

logger = logging.getLogger(__name__)

class AssetStore:
    """Originals and derived files under a single content root.

    Paths are relative, slash separated, and must stay inside the root.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, path: str) -> Path:
        if not path or "\x00" in path:
            raise StorageFailure("resolve", repr(path), "Empty or malformed storage path")
        if path.startswith(("/", "\\")) or Path(path).is_absolute() or Path(path).drive:
            raise StorageFailure("resolve", path, "Absolute paths are not allowed")
        # resolve() follows symlinks, so a link pointing outside the root is caught as well
        target = (self.root / path).resolve()
        if target == self.root or not target.is_relative_to(self.root):
            raise StorageFailure("resolve", path, f"Path escapes the content root: {path}")
        return target

    def save(self, path: str, data: bytes) -> None:
        target = self.resolve(path)
        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=target.parent, prefix=".tmp-", delete=False) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            logger.error("Failed to save %s: %s", path, e)
            raise StorageFailure("save", path) from e

    def load(self, path: str) -> bytes:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            logger.error("Failed to load %s: %s", path, e)
            raise StorageFailure("load", path) from e

    def exists(self, path: str) -> bool:
        try:
            return self.resolve(path).is_file()
        except StorageFailure:
            return False

    def delete(self, path: str) -> None:
        target = self.resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to delete %s: %s", path, e)
            raise StorageFailure("delete", path) from e

    def delete_tree(self, path: str) -> None:
        target = self.resolve(path)
        if not target.exists():
            return
        try:
            shutil.rmtree(target)
        except OSError as e:
            logger.error("Failed to delete directory %s: %s", path, e)
            raise StorageFailure("delete", path) from e
