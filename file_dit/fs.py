import os
import errno
import pathlib
import shutil
import stat
import tempfile
import uuid
from typing import Iterable, List, Optional, Tuple

import psutil
from loguru import logger

from file_dit.config import APP_NAME
from file_dit.entropy import ContentSource
from file_dit.errors import CleanupError, GenerationError, PlacementError, SetupError

MEMORY_FILESYSTEMS = ("tmpfs", "ramfs")
PARTIAL_PREFIX = ".partial-"


def make_run_tag() -> str:
    return f"_{APP_NAME}_{os.getpid()}_{uuid.uuid4().hex[:8]}"


def is_relative_to(path1, path2) -> bool:
    try:
        pathlib.PurePath(path1).relative_to(path2)
        return True
    except ValueError:
        return False


def opendir(dir_path: str) -> Tuple[int, os.stat_result]:
    dir_fd = os.open(dir_path, os.O_DIRECTORY | os.O_RDONLY)
    try:
        try:
            dir_st = os.fstat(dir_fd)
        except OSError as ex:
            ex.filename = dir_path
            raise

        if not stat.S_ISDIR(dir_st.st_mode):
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), dir_path)
        return dir_fd, dir_st
    except BaseException:
        os.close(dir_fd)
        raise


def make_run_dir(base: str, what: str) -> str:
    if not os.path.isdir(base):
        raise SetupError(f'{what} directory "{base}" can\'t be accessed')
    try:
        return tempfile.mkdtemp(dir=base, suffix=f"_{APP_NAME}")
    except OSError as ex:
        raise SetupError(f'Error creating temporary directory at "{base}": {ex}') from ex


def mount_fstype(path: str) -> Optional[str]:
    """
    Filesystem type of the mount holding path, None if it can't be determined.
    """
    path = os.path.realpath(path)
    best = None
    for part in psutil.disk_partitions(all=True):
        mountpoint = part.mountpoint
        if not is_relative_to(path, mountpoint):
            continue
        if best is None or len(mountpoint) > len(best.mountpoint):
            best = part
    return best.fstype if best is not None else None


def free_bytes(path: str) -> int:
    return psutil.disk_usage(path).free


def discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def write_fully(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]


class StagingWriter:
    def __init__(self, source: ContentSource, tag: str) -> None:
        self.source = source
        self.tag = tag

    def write(self, staging_dir: str, size_bytes: int) -> str:
        try:
            fd, path = tempfile.mkstemp(dir=staging_dir, suffix=self.tag)
        except OSError as ex:
            raise GenerationError(f"Unable to create next temporary file in {staging_dir}: {ex}") from ex
        try:
            self._fill(fd, size_bytes)
        except OSError as ex:
            discard(path)
            raise GenerationError(f"file creation for {path} failed: {ex}") from ex
        except BaseException:
            discard(path)
            raise
        return path

    def _fill(self, fd: int, size_bytes: int) -> None:
        try:
            for chunk in self.source.generate(size_bytes):
                write_fully(fd, chunk)
        finally:
            os.close(fd)


class Placer:
    """
    Moves a staged file into the target directory without touching its bytes.

    A same-filesystem move is a plain rename. Across filesystems the content is
    copied to a hidden name in the target directory and renamed into place, so
    the final name only ever refers to a complete file.
    """

    def relocate(self, staging_path: str, target_dir: str) -> str:
        filename = os.path.basename(staging_path)
        assert filename and not filename.startswith(PARTIAL_PREFIX), staging_path
        target_path = os.path.join(target_dir, filename)

        dir_fd = None
        try:
            dir_fd, _ = opendir(target_dir)
            try:
                os.stat(filename, dir_fd=dir_fd, follow_symlinks=False)
                raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), target_path)
            except FileNotFoundError:
                pass

            try:
                os.rename(staging_path, target_path)
            except OSError as ex:
                if ex.errno != errno.EXDEV:
                    raise
                self._copy_across(staging_path, target_dir, filename, dir_fd)
        except OSError as ex:
            raise PlacementError(f"Error moving file from {staging_path} to {target_dir}: {ex}") from ex
        finally:
            if dir_fd is not None:
                os.close(dir_fd)
        return target_path

    def _copy_across(self, staging_path: str, target_dir: str, filename: str, dir_fd: int) -> None:
        partial_name = PARTIAL_PREFIX + filename
        partial_path = os.path.join(target_dir, partial_name)
        try:
            shutil.copyfile(staging_path, partial_path)
            os.rename(partial_name, filename, src_dir_fd=dir_fd, dst_dir_fd=dir_fd)
        except BaseException:
            discard(partial_path)
            raise
        os.unlink(staging_path)


def fsync_path(path: str) -> None:
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def sync_directory(dir_path: str, paths: Iterable[str] = ()) -> None:
    """
    Durability barrier: flush every listed file, then the directory entries.
    """
    for path in paths:
        fsync_path(path)
    dir_fd, _ = opendir(dir_path)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def list_tagged_files(dir_path: str, tag: str) -> List[str]:
    assert tag, "refusing to match untagged files"
    names = []
    with os.scandir(dir_path) as it:
        for entry in it:
            if entry.name.endswith(tag) and entry.is_file(follow_symlinks=False):
                names.append(entry.path)
    return sorted(names)


def remove_tagged_files(dir_path: str, tag: str) -> int:
    """
    Delete regular files in dir_path (non-recursive) whose name ends with tag.

    Only files carrying the run tag are touched. Missing files and a missing
    directory are not errors.
    """
    try:
        paths = list_tagged_files(dir_path, tag)
    except FileNotFoundError:
        return 0
    except OSError as ex:
        raise CleanupError(f"Error deleting files in {dir_path}: {ex}") from ex

    removed = 0
    failed = []
    for path in paths:
        try:
            os.unlink(path)
            removed += 1
        except FileNotFoundError:
            pass
        except OSError as ex:
            failed.append(f"{path}: {ex}")
    if failed:
        raise CleanupError(f"Error deleting files in {dir_path}: " + "; ".join(failed))
    return removed


def remove_dir(dir_path: str, recursive: bool) -> None:
    try:
        if recursive:
            shutil.rmtree(dir_path)
        else:
            os.rmdir(dir_path)
    except FileNotFoundError:
        pass
    except OSError as ex:
        raise CleanupError(f"Error removing {dir_path}: {ex}") from ex
    else:
        logger.debug(f"removed {dir_path}")
