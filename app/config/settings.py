from __future__ import annotations
import os
import shutil
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# helpers
from app.config.env_utils import env_bool, env_float, env_int, env_path


# ─────────────────────────────────────────────────────────
# Project root 탐색
#   - .git / pyproject.toml 중 하나가 보이는 최상단을 루트로 간주
#   - 실패 시 BASE_DIR 환경변수, 그것도 없으면 현재 작업 디렉토리
# ─────────────────────────────────────────────────────────
def find_project_root() -> Path:
    cur = Path(__file__).resolve()
    for parent in cur.parents:
        if any((parent / m).exists() for m in (".git", "pyproject.toml")):
            return parent
    env_root = os.getenv("BASE_DIR")
    if env_root:
        return Path(env_root).resolve()
    return Path.cwd()


ROOT: Path = find_project_root()

# ─────────────────────────────────────────────────────────
# .env 로딩
#   - ENV_FILE 지정 시 우선
#   - 없으면 ROOT/.env.<ENV> → 없으면 ROOT/.env
#   - 실제 환경변수가 항상 우선 (override=False)
# ─────────────────────────────────────────────────────────
_DEFAULT_ENV = os.getenv("ENV", "test")
_env_file_candidate = ROOT / f".env.{_DEFAULT_ENV}"
_ENV_FILE = (
    Path(os.getenv("ENV_FILE")).resolve()
    if os.getenv("ENV_FILE")
    else (_env_file_candidate if _env_file_candidate.exists() else (ROOT / ".env"))
)
load_dotenv(dotenv_path=_ENV_FILE, override=False)


# 변환 타임아웃 허용 구간(초)
TRANSCODE_TIMEOUT_MIN_SEC = 10
TRANSCODE_TIMEOUT_MAX_SEC = 1800


class Settings:
    # ── App / Runtime ─────────────────────────────────────
    ENV: str = os.getenv("ENV", _DEFAULT_ENV)
    FASTAPI_PORT: int = env_int("FASTAPI_PORT", 8000)
    DEBUG_MODE: bool = env_bool("DEBUG_MODE", False)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ── Workspace ─────────────────────────────────────────
    # 요청별 작업 디렉토리는 모두 이 루트 아래에만 생성된다
    TMP_ROOT: Path = env_path("SHORTS_TMP_ROOT", Path(tempfile.gettempdir()) / "shorts-api")

    # ── Upload ────────────────────────────────────────────
    MAX_UPLOAD_BYTES: int = env_int("MAX_UPLOAD_MB", 200, low=1, high=4096) * 1024 * 1024
    UPLOAD_CHUNK_BYTES: int = env_int("UPLOAD_CHUNK_BYTES", 1024 * 1024, low=4096, high=16 * 1024 * 1024)
    MAX_FILENAME_LENGTH: int = env_int("MAX_FILENAME_LENGTH", 200, low=16, high=255)

    # ── External Tools ────────────────────────────────────
    FFMPEG_BINARY: str = os.getenv("FFMPEG_BINARY_PATH", shutil.which("ffmpeg") or "ffmpeg")
    FFPROBE_BINARY: str = os.getenv("FFPROBE_BINARY_PATH", shutil.which("ffprobe") or "ffprobe")

    # ── Transcode ─────────────────────────────────────────
    TRANSCODE_TIMEOUT_SEC: int = env_int(
        "TRANSCODE_TIMEOUT_SEC",
        180,
        low=TRANSCODE_TIMEOUT_MIN_SEC,
        high=TRANSCODE_TIMEOUT_MAX_SEC,
    )
    # 0 = 제한 없음 (보통은 리버스 프록시/프로세스 수로 바깥에서 제한)
    TRANSCODE_CONCURRENCY_LIMIT: int = env_int("TRANSCODE_CONCURRENCY_LIMIT", 0, low=0, high=64)
    STDERR_TAIL_CHARS: int = env_int("STDERR_TAIL_CHARS", 2000, low=200, high=20000)

    # ── Request defaults (요청마다 덮어쓸 수 있음) ───────
    DEFAULT_MODE: str = os.getenv("DEFAULT_MODE", "blur")
    DEFAULT_TARGET_WIDTH: int = env_int("DEFAULT_TARGET_WIDTH", 1080, low=1, high=4096)
    DEFAULT_TARGET_HEIGHT: int = env_int("DEFAULT_TARGET_HEIGHT", 1920, low=1, high=4096)
    DEFAULT_MAX_DURATION_SEC: float = env_float("DEFAULT_MAX_DURATION_SEC", 60.0, low=1.0, high=300.0)
    DEFAULT_TOLERANCE: float = env_float("DEFAULT_TOLERANCE", 0.08, low=0.001, high=0.5)


# 전역 싱글톤처럼 사용
settings = Settings()
