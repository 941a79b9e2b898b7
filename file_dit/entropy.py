"""
Random content sources, ranked fastest first.

PCG64 expands a 256 bit seed read from os.urandom; os.urandom itself is the
fallback when numpy is not installed.
"""

import os
import importlib.util
from typing import Iterator, List, Optional, Type

from loguru import logger

from file_dit.errors import GenerationError, SetupError

CHUNK_SIZE = 1 << 20
SEED_BYTES = 32


def read_entropy(length: int) -> bytes:
    try:
        return os.urandom(length)
    except (OSError, NotImplementedError) as ex:
        raise GenerationError(f"entropy source unavailable: {ex}") from ex


class ContentSource:
    name = ""

    @classmethod
    def available(cls) -> bool:
        return True

    def _next_chunk(self, length: int) -> bytes:
        raise NotImplementedError

    def generate(self, size_bytes: int) -> Iterator[bytes]:
        """
        Yield chunks of random content totalling exactly size_bytes.
        """
        assert size_bytes >= 0, size_bytes
        remaining = size_bytes
        while remaining > 0:
            length = min(CHUNK_SIZE, remaining)
            chunk = self._next_chunk(length)
            if len(chunk) != length:
                raise GenerationError(f"{self.name} returned {len(chunk)} bytes, {length} requested")
            yield chunk
            remaining -= length


class NumpyContentSource(ContentSource):
    name = "pcg64"

    def __init__(self) -> None:
        import numpy as np

        seed = int.from_bytes(read_entropy(SEED_BYTES), "little")
        self._generator = np.random.Generator(np.random.PCG64(seed))

    @classmethod
    def available(cls) -> bool:
        return importlib.util.find_spec("numpy") is not None

    def _next_chunk(self, length: int) -> bytes:
        return self._generator.bytes(length)


class UrandomContentSource(ContentSource):
    name = "urandom"

    def _next_chunk(self, length: int) -> bytes:
        return read_entropy(length)


# fastest first
CONTENT_SOURCES: List[Type[ContentSource]] = [NumpyContentSource, UrandomContentSource]


def content_source_names() -> List[str]:
    return [s.name for s in CONTENT_SOURCES]


def select_content_source(name: Optional[str] = None) -> ContentSource:
    for source_cls in CONTENT_SOURCES:
        if name is not None and source_cls.name != name:
            continue
        if not source_cls.available():
            if name is not None:
                raise SetupError(f"content source {name} is not available")
            continue
        try:
            source = source_cls()
        except GenerationError as ex:
            raise SetupError(f"cannot seed content source {source_cls.name}: {ex}") from ex
        logger.debug(f"content source: {source.name}")
        return source
    if name is not None:
        raise SetupError(f"unknown content source {name}, valid options are {content_source_names()}")
    raise SetupError("no random content source available")
