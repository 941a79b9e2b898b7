import re

IEC_SUFFIXES = ["", "K", "M", "G", "T", "P", "E", "Z", "Y"]

SIZE_RE = re.compile(r"^(\d+(?:\.\d*)?|\.\d+)([KMGTPEZY]?)$")

SIZE_FMT = "%.2f"
SIZE_FMT_PADDED = "%8.2f"


def parse_size(size_str: str) -> int:
    """
    Convert an IEC size string into bytes: 1M, 1MB, 1Mi, 1MiB and "1 mb" are all 1048576.
    """
    norm = re.sub(r"\s+", "", str(size_str)).upper()
    if norm.endswith("B"):
        norm = norm[:-1]
    if norm.endswith("I"):
        norm = norm[:-1]
    m = SIZE_RE.match(norm)
    if not m:
        raise ValueError(f"invalid size {size_str!r}")
    value, suffix = m.groups()
    multiplier = 1024 ** IEC_SUFFIXES.index(suffix)
    if "." in value:
        return int(float(value) * multiplier + 0.5)
    return int(value) * multiplier


def format_size(n: float, fmt: str = SIZE_FMT) -> str:
    """
    Bytes as an IEC size string, e.g. 1048576 -> "1.00Mi". Values below 1024 carry no suffix.
    """
    value = float(n)
    for suffix in IEC_SUFFIXES:
        if abs(value) < 1024.0 or suffix == IEC_SUFFIXES[-1]:
            break
        value /= 1024.0
    if not suffix:
        return fmt % value
    return (fmt % value) + suffix + "i"


def format_rate(nbytes: int, seconds: float, fmt: str = SIZE_FMT_PADDED) -> str:
    if seconds <= 0:
        return "inf"
    return format_size(nbytes / seconds, fmt)


def format_count(n: int) -> str:
    return f"{n:,}"
