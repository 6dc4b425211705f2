"""
비디오 메타데이터/판정/변환 결과 DTO
Prober → Evaluator → Orchestrator 간 데이터 전달용
"""
from pathlib import Path

from pydantic import BaseModel, Field

from app.schemas.options_dto import ConversionMode


class VideoMetadata(BaseModel):
    """ffprobe로 추출한 원본 메타데이터 (요청당 1회 생성, 이후 불변)"""
    width: int = Field(..., gt=0, description="폭(px)")
    height: int = Field(..., gt=0, description="높이(px)")
    duration_sec: float = Field(..., ge=0.0, description="길이(초)")
    aspect_ratio: float = Field(..., ge=0.0, description="width / height")
    has_audio: bool = Field(default=False, description="오디오 스트림 존재 여부")

    class Config:
        frozen = True

    @classmethod
    def from_geometry(cls, width: int, height: int, duration_sec: float, has_audio: bool) -> "VideoMetadata":
        aspect_ratio = width / height if height > 0 else 0.0
        return cls(
            width=width,
            height=height,
            duration_sec=duration_sec,
            aspect_ratio=aspect_ratio,
            has_audio=has_audio,
        )

    def with_geometry(self, width: int, height: int) -> "VideoMetadata":
        """변환 후 선언된 출력 해상도로 갱신한 사본 (재프로브 없음)"""
        return self.model_copy(
            update={"width": width, "height": height, "aspect_ratio": width / height}
        )


class EligibilityResult(BaseModel):
    """쇼츠 조건 판정 결과"""
    is_vertical: bool
    aspect_ok: bool
    duration_ok: bool
    eligible: bool
    violations: list[str] = Field(default_factory=list, description="위반 항목 (고정 순서)")

    class Config:
        frozen = True


class ConversionOutcome(BaseModel):
    """조건부 변환 단계 이후의 결과 (응답 스트리밍에서 소비)"""
    output_path: Path
    converted: bool
    mode_used: ConversionMode
    original_metadata: VideoMetadata
    final_metadata: VideoMetadata
    eligibility: EligibilityResult
