"""
쇼츠 조건 판정 Domain Logic
외부 의존성 없는 순수 함수
"""
from app.schemas.options_dto import ProcessingOptions
from app.schemas.video_dto import EligibilityResult, VideoMetadata

TARGET_ASPECT = 9 / 16

NOT_VERTICAL = "NOT_VERTICAL"
ASPECT_RATIO_MISMATCH = "ASPECT_RATIO_MISMATCH"
DURATION_EXCEEDED = "DURATION_EXCEEDED"


def evaluate_eligibility(metadata: VideoMetadata, options: ProcessingOptions) -> EligibilityResult:
    """
    세로 / 9:16 비율 / 길이 조건 판정

    - 정사각형(width == height)은 세로가 아님
    - 위반 항목 순서: NOT_VERTICAL → ASPECT_RATIO_MISMATCH → DURATION_EXCEEDED
    - 입력 해상도는 프로브 단계에서 양수로 검증되었다고 가정
    """
    is_vertical = metadata.height > metadata.width
    aspect_ok = abs(metadata.aspect_ratio - TARGET_ASPECT) <= options.tolerance
    duration_ok = metadata.duration_sec <= options.max_duration_sec

    violations = []
    if not is_vertical:
        violations.append(NOT_VERTICAL)
    if not aspect_ok:
        violations.append(ASPECT_RATIO_MISMATCH)
    if not duration_ok:
        violations.append(DURATION_EXCEEDED)

    return EligibilityResult(
        is_vertical=is_vertical,
        aspect_ok=aspect_ok,
        duration_ok=duration_ok,
        eligible=is_vertical and aspect_ok and duration_ok,
        violations=violations,
    )
