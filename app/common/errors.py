"""
파이프라인 에러 분류 체계
모든 실패는 고정된 코드 하나로 분류되어 호출자에게 전달된다
"""
import logging
import re
from enum import Enum
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# 응답 본문에 포함하는 외부 도구 출력 길이 (전체 tail은 로그에만 남김)
CLIENT_DETAIL_CHARS = 300

# 절대 경로 → 파일명만 남김 (workspace 경로 노출 방지)
_ABS_PATH = re.compile(r"(?:[A-Za-z]:)?(?:[\\/][^\\/\s'\":]+)+[\\/]([^\\/\s'\":]+)")


class ErrorCode(str, Enum):
    NO_INPUT = "NO_INPUT"
    UNSUPPORTED_MEDIA = "UNSUPPORTED_MEDIA"
    INPUT_TOO_LARGE = "INPUT_TOO_LARGE"
    INVALID_PATH = "INVALID_PATH"
    RESOURCE = "RESOURCE"
    PROBE_UNAVAILABLE = "PROBE_UNAVAILABLE"
    PROBE_FAILED = "PROBE_FAILED"
    CONVERSION_TIMEOUT = "CONVERSION_TIMEOUT"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    UNKNOWN = "UNKNOWN"


HTTP_STATUS = {
    ErrorCode.NO_INPUT: 400,
    ErrorCode.UNSUPPORTED_MEDIA: 415,
    ErrorCode.INPUT_TOO_LARGE: 413,
    ErrorCode.INVALID_PATH: 400,
    ErrorCode.RESOURCE: 503,
    ErrorCode.PROBE_UNAVAILABLE: 503,
    ErrorCode.PROBE_FAILED: 422,
    ErrorCode.CONVERSION_TIMEOUT: 504,
    ErrorCode.CONVERSION_FAILED: 500,
    ErrorCode.UNKNOWN: 500,
}


class PipelineError(Exception):
    """분류 코드를 가진 파이프라인 예외"""

    def __init__(self, code: ErrorCode, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        # 외부 도구 stderr 등 (이미 길이 제한된 값)
        self.detail = detail

    @property
    def status_code(self) -> int:
        return HTTP_STATUS.get(self.code, 500)

    def to_dict(self) -> dict:
        body = {"error": self.code.value, "message": self.message}
        if self.detail:
            body["message"] = f"{self.message} {client_excerpt(self.detail)}"
        return body

    def __repr__(self) -> str:
        return f"PipelineError({self.code.value}, {self.message!r})"


def tail(text: str, limit: int) -> str:
    """외부 도구 출력은 끝부분만 남긴다"""
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


def client_excerpt(text: str, limit: int = CLIENT_DETAIL_CHARS) -> str:
    """호출자에게 보낼 짧은 발췌 (경로는 파일명으로 치환)"""
    return tail(_ABS_PATH.sub(r"\1", text or ""), limit)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PipelineError)
    async def _pipeline_error_handler(request: Request, exc: PipelineError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"❌ 처리되지 않은 예외: {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=HTTP_STATUS[ErrorCode.UNKNOWN],
            content={"error": ErrorCode.UNKNOWN.value, "message": "Unexpected server error."},
        )
