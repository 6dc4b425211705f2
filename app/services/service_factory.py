from typing import Optional

from app.config.pipeline_config import PipelineConfig
from app.domain.workspace.manager import WorkspaceManager
from app.infrastructure.media.prober import FFprobeProber
from app.infrastructure.media.transcoder import FFmpegTranscoder
from app.infrastructure.process.runner import AsyncioProcessRunner, ProcessRunner
from app.services.file_service import FileService
from app.services.shorts_pipeline_service import ShortsPipelineService
from app.utils.concurrency import ConcurrencyGate


def create_shorts_pipeline_service(
        config: PipelineConfig,
        runner: Optional[ProcessRunner] = None,
) -> ShortsPipelineService:
    """
    ShortsPipelineService 인스턴스 생성

    Args:
        config: 파이프라인 설정 (불변)
        runner: 외부 프로세스 실행기 (None이면 asyncio subprocess 사용, 테스트에서는 Fake 주입)

    Returns:
        ShortsPipelineService 인스턴스
    """
    runner = runner or AsyncioProcessRunner()

    # Domain 컴포넌트 초기화
    workspaces = WorkspaceManager(root=config.tmp_root)

    # Infrastructure 컴포넌트 초기화
    prober = FFprobeProber(
        runner=runner,
        binary=config.ffprobe_binary,
        stderr_limit=config.stderr_tail_chars,
    )
    transcoder = FFmpegTranscoder(
        runner=runner,
        binary=config.ffmpeg_binary,
        timeout_sec=config.transcode_timeout_sec,
        stderr_limit=config.stderr_tail_chars,
        gate=ConcurrencyGate(config.transcode_concurrency_limit),
    )

    return ShortsPipelineService(
        workspaces=workspaces,
        prober=prober,
        transcoder=transcoder,
        chunk_bytes=config.upload_chunk_bytes,
    )


def create_file_service(config: PipelineConfig) -> FileService:
    """업로드 staging 서비스 생성 (파이프라인과 같은 temp 루트 사용)"""
    return FileService(
        workspaces=WorkspaceManager(root=config.tmp_root),
        max_bytes=config.max_upload_bytes,
        chunk_bytes=config.upload_chunk_bytes,
    )
