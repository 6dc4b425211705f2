from functools import lru_cache
from typing import Optional

from fastapi import Depends, Form, Request

from app.config.pipeline_config import PipelineConfig
from app.config.settings import settings
from app.schemas.options_dto import ProcessingOptions
from app.services.file_service import FileService
from app.services.service_factory import create_file_service, create_shorts_pipeline_service
from app.services.shorts_pipeline_service import ShortsPipelineService


@lru_cache
def get_pipeline_config() -> PipelineConfig:
    """전역 settings → 불변 PipelineConfig (프로세스당 1회)"""
    return PipelineConfig.from_settings(settings)


def current_pipeline_config(app=None) -> PipelineConfig:
    """
    요청 의존성 밖(미들웨어 등)에서 PipelineConfig 조회
    app.dependency_overrides에 등록된 provider가 있으면 그것을 사용
    """
    provider = get_pipeline_config
    if app is not None:
        provider = app.dependency_overrides.get(get_pipeline_config, get_pipeline_config)
    return provider()


# 동시 실행 게이트(semaphore)를 요청 간에 공유하기 위해 config별로 1개만 생성
@lru_cache(maxsize=8)
def _pipeline_service_for(config: PipelineConfig) -> ShortsPipelineService:
    return create_shorts_pipeline_service(config)


def get_pipeline_service(
        config: PipelineConfig = Depends(get_pipeline_config),
) -> ShortsPipelineService:
    return _pipeline_service_for(config)


def get_file_service(config: PipelineConfig = Depends(get_pipeline_config)) -> FileService:
    return create_file_service(config)


def declared_content_length(request: Request) -> Optional[int]:
    """요청 Content-Length 헤더 (없거나 잘못되면 None)"""
    raw = request.headers.get("content-length")
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


# Form 데이터 → DTO 변환
async def parse_processing_options(
        mode: Optional[str] = Form(default=None, description="변환 전략 (pad | blur)"),
        targetWidth: Optional[str] = Form(default=None, description="출력 폭(px, 1~4096)"),
        targetHeight: Optional[str] = Form(default=None, description="출력 높이(px, 1~4096)"),
        maxDurationSec: Optional[str] = Form(default=None, description="허용 최대 길이(초, 1~300)"),
        tolerance: Optional[str] = Form(default=None, description="9:16 비율 허용 오차 (0.001~0.5)"),
        forceConvert: Optional[str] = Form(default=None, description="true면 조건 충족 시에도 변환"),
        config: PipelineConfig = Depends(get_pipeline_config),
) -> ProcessingOptions:
    """
    Form 데이터를 ProcessingOptions로 변환

    - 값 검증 에러(422) 대신 기본값/경계값으로 보정한다
    - 기본값은 배포 설정(PipelineConfig.default_options)을 따른다
    """
    return ProcessingOptions.from_raw(
        {
            "mode": mode,
            "targetWidth": targetWidth,
            "targetHeight": targetHeight,
            "maxDurationSec": maxDurationSec,
            "tolerance": tolerance,
            "forceConvert": forceConvert,
        },
        defaults=config.default_options,
    )
