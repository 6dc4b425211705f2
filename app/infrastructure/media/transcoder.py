"""
ffmpeg 기반 쇼츠 변환 (pad / blur)
H.264 + AAC, faststart mp4 출력
"""
import logging
from pathlib import Path
from typing import Optional

from app.common.errors import ErrorCode, PipelineError, tail
from app.infrastructure.process.runner import (
    ProcessRunner,
    ProcessStartError,
    ProcessTimeoutError,
)
from app.schemas.options_dto import ConversionMode, ProcessingOptions
from app.utils.concurrency import ConcurrencyGate

logger = logging.getLogger(__name__)

# 인코딩 파라미터 (속도 우선 preset + 고정 품질)
VIDEO_CODEC = "libx264"
VIDEO_PRESET = "veryfast"
VIDEO_CRF = 23
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "128k"
BLUR_STRENGTH = "20:10"


def pad_filter(width: int, height: int) -> str:
    """비율 유지 축소 후 검은 여백으로 정확히 width×height 맞춤"""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease:force_divisible_by=2,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color=black,"
        "setsar=1"
    )


def blur_filter(width: int, height: int) -> str:
    """
    배경: cover 스케일 → 중앙 crop → 강한 blur
    전경: 폭 기준 비율 유지 스케일
    전경을 배경 중앙에 합성
    """
    return ";".join([
        f"[0:v]scale={width}:{height}:force_original_aspect_ratio=increase,"
        f"crop={width}:{height},boxblur={BLUR_STRENGTH}[bg]",
        f"[0:v]scale={width}:-2[fg]",
        "[bg][fg]overlay=(main_w-overlay_w)/2:(main_h-overlay_h)/2:format=auto,setsar=1[v]",
    ])


class FFmpegTranscoder:
    """실행 시간 예산 안에서 ffmpeg 변환 실행"""

    def __init__(
        self,
        runner: ProcessRunner,
        binary: str = "ffmpeg",
        timeout_sec: float = 180.0,
        stderr_limit: int = 2000,
        gate: Optional[ConcurrencyGate] = None,
    ):
        self.runner = runner
        self.binary = binary
        self.timeout_sec = timeout_sec
        self.stderr_limit = stderr_limit
        self.gate = gate or ConcurrencyGate(0)

    def build_args(self, input_path: Path, output_path: Path, options: ProcessingOptions) -> list[str]:
        w, h = options.target_width, options.target_height
        args = [self.binary, "-y", "-hide_banner", "-loglevel", "error", "-i", str(input_path)]

        if options.mode == ConversionMode.pad:
            args += ["-vf", pad_filter(w, h), "-map", "0:v:0"]
        else:
            args += ["-filter_complex", blur_filter(w, h), "-map", "[v]"]

        args += [
            # 오디오가 없는 입력도 실패하지 않도록 optional 매핑
            "-map", "0:a?",
            "-c:v", VIDEO_CODEC, "-preset", VIDEO_PRESET, "-crf", str(VIDEO_CRF),
            "-pix_fmt", "yuv420p",
            "-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE,
            "-movflags", "+faststart",
            "-shortest",
            str(output_path),
        ]
        return args

    async def convert(self, input_path: Path, output_path: Path, options: ProcessingOptions) -> None:
        """
        쇼츠 규격으로 변환. 성공 시 output_path에 파일 1개 생성

        Raises:
            PipelineError(CONVERSION_TIMEOUT): 예산 초과 (프로세스는 SIGKILL 됨)
            PipelineError(CONVERSION_FAILED): 실행 불가 / 비정상 종료 / 출력 누락
        """
        args = self.build_args(input_path, output_path, options)
        logger.info(
            f"🎬 ffmpeg 변환 시작: mode={options.mode.value} "
            f"{options.target_width}x{options.target_height} timeout={self.timeout_sec}s"
        )

        async with self.gate.slot():
            try:
                result = await self.runner.run(args, timeout=self.timeout_sec)
            except ProcessStartError as e:
                logger.error(f"❌ ffmpeg 실행 불가: {e}")
                raise PipelineError(ErrorCode.CONVERSION_FAILED, "ffmpeg spawn failed.") from e
            except ProcessTimeoutError as e:
                if not e.killed:
                    logger.error(f"❌ ffmpeg(pid={e.pid}) 종료 확인 실패")
                raise PipelineError(
                    ErrorCode.CONVERSION_TIMEOUT,
                    f"ffmpeg timeout after {self.timeout_sec:g}s.",
                ) from e

        if result.returncode != 0:
            stderr = tail(result.stderr_text, self.stderr_limit)
            logger.warning(f"ffmpeg exit={result.returncode}: {stderr}")
            raise PipelineError(
                ErrorCode.CONVERSION_FAILED,
                f"ffmpeg exited with code {result.returncode}.",
                detail=stderr or None,
            )

        if not output_path.is_file() or output_path.stat().st_size == 0:
            raise PipelineError(ErrorCode.CONVERSION_FAILED, "ffmpeg output missing despite success exit.")

        logger.info(f"✅ ffmpeg 변환 완료: {result.duration_ms}ms")
