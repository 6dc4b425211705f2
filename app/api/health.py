from fastapi import APIRouter, Depends

from app.common.dependencies import get_pipeline_config
from app.config.pipeline_config import PipelineConfig
from app.utils.sysload import binary_available, directory_writable

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/health/detailed")
def health_detailed(config: PipelineConfig = Depends(get_pipeline_config)):
    ffmpeg = binary_available(config.ffmpeg_binary)
    ffprobe = binary_available(config.ffprobe_binary)
    writable = directory_writable(config.tmp_root)
    return {
        "status": "ok" if (ffmpeg and ffprobe and writable) else "degraded",
        "ffmpeg": ffmpeg,
        "ffprobe": ffprobe,
        "tmp_root_writable": writable,
    }


ROUTERS = [router]
