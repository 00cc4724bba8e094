"""Resolution codes and bucket alignment."""

from typing import Union

Resolution = Union[str, int]

SUPPORTED_RESOLUTIONS = ["1", "5", "15", "30", "60", "240", "1D"]

_RESOLUTION_SECONDS = {
    "1": 60,
    "5": 300,
    "15": 900,
    "30": 1800,
    "60": 3600,
    "240": 14400,
    "1D": 86400,
}
DEFAULT_RESOLUTION_SECONDS = 60


def seconds_for(resolution: Resolution) -> int:
    """Bucket width in seconds; unknown codes fall back to one minute."""
    return _RESOLUTION_SECONDS.get(str(resolution).strip(), DEFAULT_RESOLUTION_SECONDS)


def align(ts: float, resolution: Resolution) -> int:
    """Floor an epoch-second timestamp to the start of its bucket."""
    size = seconds_for(resolution)
    return (int(ts) // size) * size
