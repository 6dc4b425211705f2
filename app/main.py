import logging

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from app.api import include_all_routers
from app.common.errors import register_exception_handlers
from app.common.middleware import UploadSizeLimitMiddleware
from app.config.settings import settings

# ---------- 로거 ----------
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

# 앱 생성
app = FastAPI(debug=settings.DEBUG_MODE)

# 에러 코드 → JSON 응답 변환
register_exception_handlers(app)

# 업로드 상한: 본문을 읽기 전에 Content-Length로 거름
app.add_middleware(UploadSizeLimitMiddleware)

# 자동으로 app/api/* 모듈을 스캔해 라우터 전부 등록
include_all_routers(app)

app.openapi = lambda: get_openapi(
    title="Shorts Converter API",
    version="1.0.0",
    description="세로형 쇼츠(9:16) 조건 검사 및 변환 API",
    routes=app.routes,
)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.FASTAPI_PORT, reload=settings.DEBUG_MODE)
