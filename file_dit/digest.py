import hashlib
import importlib.util
from typing import Iterable, List, Optional, Type

from loguru import logger

from file_dit.errors import HashError, SetupError

READ_SIZE = 1 << 20


class Digester:
    """
    Content fingerprint over a byte stream: deterministic, order sensitive, unkeyed.
    """

    name = ""
    module = ""

    @classmethod
    def available(cls) -> bool:
        return not cls.module or importlib.util.find_spec(cls.module) is not None

    def new(self):
        raise NotImplementedError

    def digest_stream(self, chunks: Iterable[bytes]) -> str:
        h = self.new()
        for chunk in chunks:
            h.update(chunk)
        return h.hexdigest()

    def digest_bytes(self, data: bytes) -> str:
        return self.digest_stream([data])

    def digest_file(self, path: str) -> str:
        h = self.new()
        try:
            with open(path, "rb", buffering=0) as f:
                while True:
                    chunk = f.read(READ_SIZE)
                    if not chunk:
                        break
                    h.update(chunk)
        except OSError as ex:
            raise HashError(f"cannot read {path}: {ex}") from ex
        return h.hexdigest()

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name})"


class XXH3Digester(Digester):
    name = "xxh3_128"
    module = "xxhash"

    def new(self):
        import xxhash

        return xxhash.xxh3_128()


class Blake2bDigester(Digester):
    name = "blake2b"

    def new(self):
        return hashlib.blake2b(digest_size=16)


class Sha1Digester(Digester):
    name = "sha1"

    def new(self):
        return hashlib.sha1()


# fastest first, sha1 is the universally available fallback
DIGESTERS: List[Type[Digester]] = [XXH3Digester, Blake2bDigester, Sha1Digester]


def digester_names() -> List[str]:
    return [d.name for d in DIGESTERS]


def select_digester(name: Optional[str] = None) -> Digester:
    if name is not None and name not in digester_names():
        raise SetupError(f"unknown hash {name}, valid options are {digester_names()}")
    for digester_cls in DIGESTERS:
        if name is not None and digester_cls.name != name:
            continue
        if digester_cls.available():
            logger.debug(f"hash: {digester_cls.name}")
            return digester_cls()
        if name is not None:
            raise SetupError(f"hash {name} is not available, install {digester_cls.module}")
    raise SetupError(f"no hash implementation available, tried {digester_names()}")
