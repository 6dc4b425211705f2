import logging

from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from app.common.dependencies import current_pipeline_config
from app.common.errors import ErrorCode, PipelineError
from app.services.file_service import too_large_message

logger = logging.getLogger(__name__)


class UploadSizeLimitMiddleware:
    """
    요청 본문을 읽기 전에 Content-Length로 업로드 상한 검사

    FastAPI는 핸들러/의존성 실행 전에 multipart 본문 전체를 파싱하므로
    선언된 길이가 상한을 넘으면 여기서 바로 413을 돌려준다.
    Content-Length가 없는 요청은 FileService의 누적 크기 검사에 맡긴다.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("method") != "POST":
            await self.app(scope, receive, send)
            return

        declared = _content_length(scope)
        if declared is not None:
            config = current_pipeline_config(scope.get("app"))
            # multipart 오버헤드를 감안해 청크 1개만큼 여유
            if declared > config.max_upload_bytes + config.upload_chunk_bytes:
                logger.warning(f"⚠️ 업로드 거부: Content-Length={declared} ({scope.get('path')})")
                error = PipelineError(ErrorCode.INPUT_TOO_LARGE, too_large_message(config.max_upload_bytes))
                response = JSONResponse(status_code=error.status_code, content=error.to_dict())
                await response(scope, receive, send)
                return

        await self.app(scope, receive, send)


def _content_length(scope: Scope):
    raw = Headers(scope=scope).get("content-length")
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None
