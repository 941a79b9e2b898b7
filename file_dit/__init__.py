from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("file_dit")
except PackageNotFoundError:
    __version__ = "debug"
