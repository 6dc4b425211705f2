import os
from pathlib import Path

"""환경 변수에서 bool 타입을 안전하게 읽는다."""


def env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


"""환경 변수에서 정수를 읽고 [low, high] 범위로 고정한다. 파싱 실패 시 기본값."""


def env_int(name: str, default: int, low: int | None = None, high: int | None = None) -> int:
    v = os.getenv(name)
    try:
        value = int(v) if v not in (None, "") else default
    except ValueError:
        value = default
    return clamp(value, low, high)


"""환경 변수에서 실수를 읽고 [low, high] 범위로 고정한다."""


def env_float(name: str, default: float, low: float | None = None, high: float | None = None) -> float:
    v = os.getenv(name)
    try:
        value = float(v) if v not in (None, "") else default
    except ValueError:
        value = default
    return clamp(value, low, high)


"""환경 변수에서 파일 경로를 Path 객체로 변환."""


def env_path(name: str, default: Path) -> Path:
    v = os.getenv(name)
    return Path(v) if v else default


def clamp(value, low=None, high=None):
    if low is not None and value < low:
        return low
    if high is not None and value > high:
        return high
    return value
