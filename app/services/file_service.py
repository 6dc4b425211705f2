import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from app.common.errors import ErrorCode, PipelineError
from app.domain.workspace.manager import Workspace, WorkspaceManager
from app.utils.filename import split_display_name

logger = logging.getLogger(__name__)

VIDEO_MIMES = {
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "video/webm",
    "video/x-matroska",
}


def too_large_message(max_bytes: int) -> str:
    return f"File size exceeds {max_bytes // (1024 * 1024)}MB limit."


def is_video_mime(mime: Optional[str]) -> bool:
    if not mime:
        return False
    mime = mime.split(";", 1)[0].strip().lower()
    return mime in VIDEO_MIMES or mime.startswith("video/")


@dataclass
class StagedUpload:
    """workspace에 저장된 업로드 파일"""
    workspace: Workspace
    path: Path
    display_name: str
    content_type: str
    size_bytes: int

    @property
    def request_id(self) -> str:
        return self.workspace.request_id


class FileService:
    """업로드 파일을 요청 전용 workspace에 저장하는 서비스"""

    def __init__(self, workspaces: WorkspaceManager, max_bytes: int, chunk_bytes: int = 1024 * 1024):
        self.workspaces = workspaces
        self.max_bytes = max_bytes
        self.chunk_bytes = chunk_bytes

    async def stage_upload(
        self,
        file: Optional[UploadFile],
        declared_length: Optional[int] = None,
    ) -> StagedUpload:
        """
        업로드 파일 저장

        Args:
            file: FastAPI UploadFile 객체 (없으면 NO_INPUT)
            declared_length: 요청 Content-Length (있으면 읽기 전에 상한 검사)

        Returns:
            StagedUpload (실패 시 workspace는 이미 삭제됨)
        """
        if file is None or not file.filename:
            raise PipelineError(ErrorCode.NO_INPUT, 'No file uploaded. Use multipart field "file".')

        if not is_video_mime(file.content_type):
            raise PipelineError(ErrorCode.UNSUPPORTED_MEDIA, "File is not a video (invalid MIME type).")

        if declared_length is not None and declared_length > self.max_bytes + self.chunk_bytes:
            # 보통은 UploadSizeLimitMiddleware가 먼저 거른다 (서비스 단독 호출 대비)
            raise PipelineError(ErrorCode.INPUT_TOO_LARGE, self._too_large_message())

        workspace = self.workspaces.create_workspace()
        try:
            # 디스크 이름은 고정 + 정리된 확장자만 사용 (원본 이름은 경로에 쓰지 않음)
            _, ext = split_display_name(file.filename)
            dest = self.workspaces.resolve_within(workspace, f"source{ext.lower()}")

            size = 0
            try:
                with open(dest, "wb") as f:
                    while chunk := await file.read(self.chunk_bytes):
                        size += len(chunk)
                        if size > self.max_bytes:
                            raise PipelineError(ErrorCode.INPUT_TOO_LARGE, self._too_large_message())
                        f.write(chunk)
            except OSError as e:
                logger.error(f"[{workspace.request_id}] ❌ 업로드 저장 실패: {e}")
                raise PipelineError(ErrorCode.RESOURCE, "Failed to stage upload.") from e

            if size == 0:
                raise PipelineError(ErrorCode.NO_INPUT, "Uploaded file is empty.")

        except BaseException:
            self.workspaces.destroy(workspace)
            raise

        logger.info(f"[{workspace.request_id}] ✅ 업로드 저장: {size} bytes ({file.content_type})")
        return StagedUpload(
            workspace=workspace,
            path=dest,
            display_name=file.filename,
            content_type=file.content_type,
            size_bytes=size,
        )

    def _too_large_message(self) -> str:
        return too_large_message(self.max_bytes)
