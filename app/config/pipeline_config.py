"""
파이프라인 컴포넌트에 명시적으로 전달되는 불변 설정 값
컴포넌트는 전역 settings를 직접 읽지 않는다
"""
from dataclasses import dataclass, field
from pathlib import Path

from app.config.settings import Settings
from app.schemas.options_dto import ProcessingOptions


@dataclass(frozen=True)
class PipelineConfig:
    tmp_root: Path
    max_upload_bytes: int = 200 * 1024 * 1024
    upload_chunk_bytes: int = 1024 * 1024
    max_filename_length: int = 200
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    transcode_timeout_sec: float = 180.0
    transcode_concurrency_limit: int = 0
    stderr_tail_chars: int = 2000
    default_options: ProcessingOptions = field(default_factory=ProcessingOptions)

    @classmethod
    def from_settings(cls, s: Settings) -> "PipelineConfig":
        return cls(
            tmp_root=Path(s.TMP_ROOT),
            max_upload_bytes=s.MAX_UPLOAD_BYTES,
            upload_chunk_bytes=s.UPLOAD_CHUNK_BYTES,
            max_filename_length=s.MAX_FILENAME_LENGTH,
            ffmpeg_binary=s.FFMPEG_BINARY,
            ffprobe_binary=s.FFPROBE_BINARY,
            transcode_timeout_sec=float(s.TRANSCODE_TIMEOUT_SEC),
            transcode_concurrency_limit=s.TRANSCODE_CONCURRENCY_LIMIT,
            stderr_tail_chars=s.STDERR_TAIL_CHARS,
            # env 기본값도 요청 옵션과 같은 규칙으로 보정
            default_options=ProcessingOptions.from_raw(
                {
                    "mode": s.DEFAULT_MODE,
                    "targetWidth": s.DEFAULT_TARGET_WIDTH,
                    "targetHeight": s.DEFAULT_TARGET_HEIGHT,
                    "maxDurationSec": s.DEFAULT_MAX_DURATION_SEC,
                    "tolerance": s.DEFAULT_TOLERANCE,
                }
            ),
        )
