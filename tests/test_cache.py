import os

import pytest

from file_dit.cache import CacheInvalidator
from file_dit.errors import CacheInvalidationError, HashError, SetupError

from conftest import requires_fadvise


@requires_fadvise
def test_invalidate_keeps_content(tmp_path):
    path = tmp_path / "data"
    data = os.urandom(256 * 1024)
    path.write_bytes(data)
    invalidator = CacheInvalidator()
    invalidator.invalidate(str(path))
    invalidator.invalidate(str(path))
    assert path.read_bytes() == data


@requires_fadvise
def test_invalidate_missing_file(tmp_path):
    with pytest.raises(HashError):
        CacheInvalidator().invalidate(str(tmp_path / "missing"))


@requires_fadvise
def test_invalidate_fadvise_failure(tmp_path, monkeypatch):
    path = tmp_path / "data"
    path.write_bytes(b"x")

    def broken_fadvise(fd, offset, length, advice):
        raise OSError(22, "Invalid argument")

    monkeypatch.setattr(os, "posix_fadvise", broken_fadvise)
    with pytest.raises(CacheInvalidationError):
        CacheInvalidator().invalidate(str(path))


def test_check_supported_without_fadvise(monkeypatch):
    monkeypatch.delattr(os, "posix_fadvise", raising=False)
    with pytest.raises(SetupError):
        CacheInvalidator.check_supported()
