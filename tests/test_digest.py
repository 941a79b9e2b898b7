import hashlib
import importlib.util

import pytest

from file_dit import digest
from file_dit.digest import (
    DIGESTERS,
    Blake2bDigester,
    Sha1Digester,
    XXH3Digester,
    digester_names,
    select_digester,
)
from file_dit.errors import HashError, SetupError

has_xxhash = importlib.util.find_spec("xxhash") is not None


@pytest.mark.parametrize("digester_cls", [Sha1Digester, Blake2bDigester])
def test_digest_is_deterministic_and_order_sensitive(digester_cls):
    d = digester_cls()
    assert d.digest_bytes(b"abcdef") == d.digest_bytes(b"abcdef")
    assert d.digest_stream([b"abc", b"def"]) == d.digest_bytes(b"abcdef")
    assert d.digest_stream([b"def", b"abc"]) != d.digest_bytes(b"abcdef")


def test_sha1_matches_hashlib():
    assert Sha1Digester().digest_bytes(b"file-dit") == hashlib.sha1(b"file-dit").hexdigest()


@pytest.mark.skipif(not has_xxhash, reason="xxhash not installed")
def test_xxh3_fixed_size():
    d = XXH3Digester()
    assert len(d.digest_bytes(b"")) == 32
    assert len(d.digest_bytes(b"x" * 100000)) == 32


def test_digest_file(tmp_path):
    path = tmp_path / "data"
    data = bytes(range(256)) * 9000
    path.write_bytes(data)
    d = Sha1Digester()
    assert d.digest_file(str(path)) == hashlib.sha1(data).hexdigest()


def test_digest_file_missing(tmp_path):
    with pytest.raises(HashError):
        Sha1Digester().digest_file(str(tmp_path / "missing"))


def test_digest_file_directory(tmp_path):
    with pytest.raises(HashError):
        Sha1Digester().digest_file(str(tmp_path))


def test_ranking_fastest_first():
    assert digester_names() == ["xxh3_128", "blake2b", "sha1"]


@pytest.mark.skipif(not has_xxhash, reason="xxhash not installed")
def test_select_default_is_fastest():
    assert isinstance(select_digester(), XXH3Digester)


def test_select_degrades_when_fast_ones_missing(monkeypatch):
    monkeypatch.setattr(XXH3Digester, "available", classmethod(lambda cls: False))
    monkeypatch.setattr(Blake2bDigester, "available", classmethod(lambda cls: False))
    assert isinstance(select_digester(), Sha1Digester)


def test_select_by_name():
    assert isinstance(select_digester("sha1"), Sha1Digester)
    assert isinstance(select_digester("blake2b"), Blake2bDigester)


def test_select_unknown_name():
    with pytest.raises(SetupError):
        select_digester("md4")


def test_select_named_unavailable(monkeypatch):
    monkeypatch.setattr(XXH3Digester, "available", classmethod(lambda cls: False))
    with pytest.raises(SetupError):
        select_digester("xxh3_128")


def test_select_none_available(monkeypatch):
    monkeypatch.setattr(digest, "DIGESTERS", [])
    with pytest.raises(SetupError):
        select_digester()
    assert len(DIGESTERS) == 3
