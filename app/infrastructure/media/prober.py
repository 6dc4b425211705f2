"""
ffprobe 기반 메타데이터 추출
셸 없이 인자 벡터로 실행, JSON 출력 파싱
"""
import json
import logging
from pathlib import Path
from typing import Any, Optional

from app.common.errors import ErrorCode, PipelineError, tail
from app.infrastructure.process.runner import ProcessRunner, ProcessStartError
from app.schemas.video_dto import VideoMetadata

logger = logging.getLogger(__name__)


class FFprobeProber:
    """stream/format 단위 width, height, duration, codec_type 추출"""

    def __init__(self, runner: ProcessRunner, binary: str = "ffprobe", stderr_limit: int = 2000):
        self.runner = runner
        self.binary = binary
        self.stderr_limit = stderr_limit

    def build_args(self, path: Path) -> list[str]:
        return [
            self.binary,
            "-v", "error",
            "-show_entries", "stream=width,height,duration,codec_type",
            "-show_entries", "format=duration",
            "-of", "json",
            "-i", str(path),
        ]

    async def probe(self, path: Path) -> VideoMetadata:
        """
        staging된 파일의 메타데이터 추출 (재시도 없음)

        Raises:
            PipelineError(PROBE_UNAVAILABLE): ffprobe 실행 불가
            PipelineError(PROBE_FAILED): 비정상 종료 / 파싱 실패 / 사용 가능한 비디오 스트림 없음
        """
        try:
            result = await self.runner.run(self.build_args(path))
        except ProcessStartError as e:
            logger.error(f"❌ ffprobe 실행 불가: {e}")
            raise PipelineError(ErrorCode.PROBE_UNAVAILABLE, "Metadata prober is not available.") from e

        if result.returncode != 0:
            stderr = tail(result.stderr_text, self.stderr_limit)
            logger.warning(f"ffprobe exit={result.returncode}: {stderr}")
            raise PipelineError(
                ErrorCode.PROBE_FAILED,
                f"ffprobe exited with code {result.returncode}.",
                detail=stderr or None,
            )

        return parse_probe_output(result.stdout_text)


def parse_probe_output(raw: str) -> VideoMetadata:
    """ffprobe JSON → VideoMetadata"""
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise PipelineError(ErrorCode.PROBE_FAILED, "ffprobe output is not valid JSON.") from e

    if not isinstance(data, dict):
        raise PipelineError(ErrorCode.PROBE_FAILED, "ffprobe output has an unexpected structure.")

    streams = data.get("streams") or []
    fmt = data.get("format") or {}
    if not isinstance(streams, list) or not isinstance(fmt, dict):
        raise PipelineError(ErrorCode.PROBE_FAILED, "ffprobe output has an unexpected structure.")

    video = None
    has_audio = False
    for s in streams:
        if not isinstance(s, dict):
            continue
        codec_type = s.get("codec_type")
        if codec_type == "audio":
            has_audio = True
        elif codec_type == "video" and video is None:
            if _positive_int(s.get("width")) and _positive_int(s.get("height")):
                video = s

    if video is None:
        raise PipelineError(ErrorCode.PROBE_FAILED, "ffprobe: no usable video stream (missing width/height).")

    # stream duration 우선, 없거나 0 이하이면 container duration
    duration = _positive_float(video.get("duration")) or _positive_float(fmt.get("duration"))
    if duration is None:
        raise PipelineError(ErrorCode.PROBE_FAILED, "ffprobe: no usable duration.")

    return VideoMetadata.from_geometry(
        width=_positive_int(video.get("width")),
        height=_positive_int(video.get("height")),
        duration_sec=duration,
        has_audio=has_audio,
    )


def _positive_int(value: Any) -> Optional[int]:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


def _positive_float(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    # NaN/inf 제외
    return f if 0 < f < float("inf") else None
