"""
변환 옵션 DTO
요청마다 Form 데이터로 받아서 기본값/범위 보정 후 불변 객체로 사용
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field

# 옵션 허용 범위
MAX_TARGET_DIMENSION = 4096
MIN_DURATION_SEC = 1.0
MAX_DURATION_SEC = 300.0
MIN_TOLERANCE = 0.001
MAX_TOLERANCE = 0.5

_TRUTHY = ("1", "true", "yes", "y", "on")


class ConversionMode(str, Enum):
    """변환 전략 (pad: 레터박스, blur: 블러 배경 + 전경 오버레이)"""
    pad = "pad"
    blur = "blur"


class ProcessingOptions(BaseModel):
    """요청 단위 처리 옵션 (요청 동안 불변, 저장하지 않음)"""
    mode: ConversionMode = Field(default=ConversionMode.blur, description="변환 전략")
    target_width: int = Field(default=1080, ge=1, le=MAX_TARGET_DIMENSION, description="출력 폭(px)")
    target_height: int = Field(default=1920, ge=1, le=MAX_TARGET_DIMENSION, description="출력 높이(px)")
    max_duration_sec: float = Field(
        default=60.0, ge=MIN_DURATION_SEC, le=MAX_DURATION_SEC, description="허용 최대 길이(초)"
    )
    tolerance: float = Field(
        default=0.08, ge=MIN_TOLERANCE, le=MAX_TOLERANCE, description="9:16 비율 허용 오차"
    )
    force_convert: bool = Field(default=False, description="조건 충족 여부와 관계없이 변환")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "mode": "blur",
                "target_width": 1080,
                "target_height": 1920,
                "max_duration_sec": 60,
                "tolerance": 0.08,
                "force_convert": False,
            }
        }

    @classmethod
    def from_raw(
        cls,
        raw: Mapping[str, Any],
        defaults: Optional["ProcessingOptions"] = None,
    ) -> "ProcessingOptions":
        """
        느슨한 입력(Form 문자열 등)을 옵션으로 변환

        - 값이 없거나 숫자가 아니거나 0 이하 → 기본값
        - 범위를 벗어나면 경계값으로 고정
        - 알 수 없는 mode → 기본 mode

        Args:
            raw: camelCase 키 (mode, targetWidth, targetHeight, maxDurationSec, tolerance, forceConvert)
            defaults: 기본 옵션 (없으면 클래스 기본값)
        """
        base = defaults or cls()

        mode_raw = raw.get("mode")
        try:
            mode = ConversionMode(str(mode_raw).strip().lower()) if mode_raw is not None else base.mode
        except ValueError:
            mode = base.mode

        return cls(
            mode=mode,
            target_width=int(
                _bounded(raw.get("targetWidth"), base.target_width, 1, MAX_TARGET_DIMENSION)
            ),
            target_height=int(
                _bounded(raw.get("targetHeight"), base.target_height, 1, MAX_TARGET_DIMENSION)
            ),
            max_duration_sec=_bounded(
                raw.get("maxDurationSec"), base.max_duration_sec, MIN_DURATION_SEC, MAX_DURATION_SEC
            ),
            tolerance=_bounded(raw.get("tolerance"), base.tolerance, MIN_TOLERANCE, MAX_TOLERANCE),
            force_convert=_as_bool(raw.get("forceConvert"), base.force_convert),
        )


def _bounded(value: Any, default: float, low: float, high: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(str(value).strip())
    except ValueError:
        return default
    if not math.isfinite(number) or number <= 0:
        return default
    return max(low, min(high, number))


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY
