import hashlib
from abc import ABCMeta, abstractmethod
from collections.abc import Iterable


class Hasher(metaclass=ABCMeta):
    @property
    @abstractmethod
    def name(self) -> str:
        raise NotImplementedError()

    @abstractmethod
    def update(self, data: bytes) -> None:
        raise NotImplementedError()

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError()

    @property
    @abstractmethod
    def digest(self) -> bytes:
        raise NotImplementedError()

    @property
    def hexdigest(self) -> str:
        return self.digest.hex()

    def cal_chunks(self, chunks: Iterable[bytes]) -> str:
        """Reset, feed every chunk and return the hex digest."""
        self.reset()
        for chunk in chunks:
            self.update(chunk)
        return self.hexdigest


class Sha256Hasher(Hasher):
    def __init__(self) -> None:
        self.reset()

    @property
    def name(self) -> str:
        return "SHA256"

    def update(self, data: bytes) -> None:
        self._hash.update(data)

    def reset(self) -> None:
        self._hash = hashlib.sha256()

    @property
    def digest(self) -> bytes:
        return self._hash.digest()

