from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile

from app.common.dependencies import (
    declared_content_length,
    get_file_service,
    get_pipeline_config,
    get_pipeline_service,
    parse_processing_options,
)
from app.common.errors import ErrorCode, PipelineError
from app.config.pipeline_config import PipelineConfig
from app.schemas.inspect_response import ErrorResponse, InspectResponse
from app.schemas.options_dto import ProcessingOptions
from app.services.file_service import FileService
from app.services.shorts_pipeline_service import ShortsPipelineService
from app.utils.filename import disposition_filename
from app.utils.streaming import CleanupStreamingResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Shorts"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    415: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


# ========== API Endpoint ==========
@router.post("/inspect", response_model=InspectResponse, responses=_ERROR_RESPONSES)
async def inspect_video(
        request: Request,
        file: Optional[UploadFile] = File(None, description="검사할 비디오 파일"),
        options: ProcessingOptions = Depends(parse_processing_options),
        file_service: FileService = Depends(get_file_service),
        service: ShortsPipelineService = Depends(get_pipeline_service),
) -> InspectResponse:
    """
    쇼츠 조건 검사 API (변환 없음)

    응답: width, height, durationSec, aspectRatio, shortsEligible, reason
    """
    upload = await file_service.stage_upload(file, declared_content_length(request))
    return await service.inspect(upload, options)


@router.post(
    "/process/shorts",
    response_class=CleanupStreamingResponse,
    responses={200: {"content": {"video/mp4": {}}}, **_ERROR_RESPONSES},
)
async def process_shorts(
        request: Request,
        file: Optional[UploadFile] = File(None, description="변환할 비디오 파일"),
        options: ProcessingOptions = Depends(parse_processing_options),
        file_service: FileService = Depends(get_file_service),
        service: ShortsPipelineService = Depends(get_pipeline_service),
        config: PipelineConfig = Depends(get_pipeline_config),
) -> CleanupStreamingResponse:
    """
    쇼츠 변환 API

    - 이미 조건을 만족하고 forceConvert가 아니면 원본을 그대로 반환
    - 아니면 pad/blur 전략으로 변환한 mp4 반환
    - 메타데이터는 X-* 응답 헤더로 전달
    """
    upload = await file_service.stage_upload(file, declared_content_length(request))
    run, outcome = await service.prepare(upload, options)

    try:
        size = outcome.output_path.stat().st_size
    except OSError as e:
        service.release(run)
        raise PipelineError(ErrorCode.UNKNOWN, "Output file is not readable.") from e

    final = outcome.final_metadata
    filename = disposition_filename(upload.display_name, outcome.converted, config.max_filename_length)
    headers = {
        "Content-Length": str(size),
        "Content-Disposition": f'attachment; filename="{filename}"',
        "X-Request-Id": run.request_id,
        "X-Video-Width": str(final.width),
        "X-Video-Height": str(final.height),
        "X-Video-DurationSec": str(round(final.duration_sec, 3)),
        "X-Video-AspectRatio": str(round(final.aspect_ratio, 3)),
        "X-Shorts-Eligible": str(outcome.eligibility.eligible).lower(),
        "X-Converted": str(outcome.converted).lower(),
        "X-Conversion-Mode": outcome.mode_used.value,
    }
    media_type = "video/mp4" if outcome.converted else (upload.content_type or "video/mp4")

    # 정리: 스트림 generator의 finally + 응답 종료 시 release (멱등)
    return CleanupStreamingResponse(
        service.stream(run, outcome),
        on_close=lambda: service.release(run),
        media_type=media_type,
        headers=headers,
    )


ROUTERS = [router]
