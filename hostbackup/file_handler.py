import os
from abc import ABCMeta, abstractmethod
from collections.abc import Iterator
from pathlib import Path
from typing import Any

CHUNK_SIZE = 4096

SIZE_UNITS = ("B", "K", "M", "G", "T", "P")


def format_size(size: int) -> str:
    """Human readable size in the style of `du -h`."""
    value = float(size)
    for unit in SIZE_UNITS:
        if value < 1024 or unit == SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(value)}{unit}"
            return f"{value:.1f}{unit}"
        value /= 1024

    return f"{size}B"


class FileHandler(metaclass=ABCMeta):
    @abstractmethod
    def delete(self, filepath: str | Path) -> None:
        """Delete a file.

        Args:
            filepath: The file to delete.
        """
        raise NotImplementedError()

    @abstractmethod
    def check_file(self, filepath: str | Path) -> bool:
        raise NotImplementedError()

    @abstractmethod
    def get_file_size(self, filepath: Path) -> int:
        """Size of a file in bytes, -1 if it does not exist."""
        raise NotImplementedError()

    @abstractmethod
    def is_writable_dir(self, dirpath: Path) -> bool:
        """Whether `dirpath` exists, is a directory and is writable."""
        raise NotImplementedError()

    @abstractmethod
    def iter_chunks(self, filepath: Path) -> Iterator[bytes]:
        raise NotImplementedError()

    def discard(self, filepath: str | Path) -> bool:
        """Delete a file if present.

        Returns:
            `True` if a file was deleted.
        """
        if not self.check_file(filepath):
            return False

        self.delete(filepath)
        return True


class OsFileHandler(FileHandler):
    """OS File System"""

    def delete(self, filepath: str | Path) -> None:
        os.remove(filepath)

    def check_file(self, filepath: str | Path) -> bool:
        return Path(filepath).is_file()

    def get_file_size(self, filepath: Path) -> int:
        try:
            return filepath.stat().st_size
        except FileNotFoundError:
            return -1

    def is_writable_dir(self, dirpath: Path) -> bool:
        return dirpath.is_dir() and os.access(dirpath, os.W_OK)

    def iter_chunks(self, filepath: Path) -> Iterator[bytes]:
        with open(filepath, "rb") as f:
            for block in iter(lambda: f.read(CHUNK_SIZE), b""):
                yield block


class MockFileSystem(FileHandler):
    files: dict[str, Any]
    writable_dirs: set[str]
    deleted: list[str]

    def __init__(self, writable_dirs: list[str | Path] | None = None) -> None:
        self.files = {}
        self.writable_dirs = {str(d) for d in writable_dirs or []}
        self.deleted = []

    def save(self, filepath: str | Path, content: Any) -> None:
        self.files[str(filepath)] = content

    def read(self, filepath: str | Path) -> Any:
        file = str(filepath)
        if file in self.files:
            return self.files[file]
        else:
            raise FileNotFoundError(f"File '{filepath}' not found.")

    def delete(self, filepath: str | Path) -> None:
        file = str(filepath)
        if file in self.files:
            del self.files[file]
            self.deleted.append(file)
        else:
            raise FileNotFoundError(f"File '{filepath}' not found.")

    def check_file(self, filepath: str | Path) -> bool:
        return str(filepath) in self.files

    def get_file_size(self, filepath: Path) -> int:
        try:
            file = self.files[str(filepath)]
            if file is None:
                return -1

            return len(file)
        except KeyError:
            return -1

    def is_writable_dir(self, dirpath: Path) -> bool:
        return str(dirpath) in self.writable_dirs

    def iter_chunks(self, filepath: Path) -> Iterator[bytes]:
        content = self.read(filepath)
        data = content if isinstance(content, bytes) else repr(content).encode()
        for offset in range(0, len(data), CHUNK_SIZE):
            yield data[offset : offset + CHUNK_SIZE]

    def under(self, dirpath: str | Path) -> list[str]:
        """All files at or below `dirpath`."""
        root = str(dirpath).rstrip("/")
        return sorted(f for f in self.files if f == root or f.startswith(root + "/"))
