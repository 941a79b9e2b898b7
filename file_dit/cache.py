import os

from loguru import logger

from file_dit.errors import CacheInvalidationError, HashError, SetupError


class CacheInvalidator:
    """
    Drops the page cache of a single file so the next read is served by the device.

    Equivalent of ``dd of=FILE oflag=nocache conv=notrunc,fdatasync count=0``:
    a zero-length write barrier followed by a DONTNEED hint for the whole file.
    """

    @staticmethod
    def check_supported() -> None:
        if not hasattr(os, "posix_fadvise") or not hasattr(os, "POSIX_FADV_DONTNEED"):
            raise SetupError("posix_fadvise is not supported on this platform, can't bypass the page cache")

    def invalidate(self, path: str) -> None:
        """
        Raises HashError when the file can't be opened, CacheInvalidationError when
        it opens but its cached pages can't be dropped.
        """
        try:
            fd = os.open(path, os.O_RDONLY)
        except OSError as ex:
            raise HashError(f"cannot read {path}: {ex}") from ex
        try:
            os.fdatasync(fd)
            os.posix_fadvise(fd, 0, 0, os.POSIX_FADV_DONTNEED)
        except OSError as ex:
            raise CacheInvalidationError(f"clearing pagecache for file {path} failed: {ex}") from ex
        finally:
            os.close(fd)
        logger.debug(f"dropped pagecache: {path}")
