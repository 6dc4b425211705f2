"""
Pytest Configuration & Shared Fixtures

이 파일은 모든 테스트에서 재사용 가능한 fixture를 정의합니다.
"""
import pytest
from fastapi.testclient import TestClient

from app.config.pipeline_config import PipelineConfig
from app.domain.workspace.manager import WorkspaceManager
from app.services.service_factory import create_file_service, create_shorts_pipeline_service
from tests.test_helpers import FakeProcessRunner


# ========================================
# Config / Domain Fixtures
# ========================================

@pytest.fixture
def tmp_root(tmp_path):
    """요청 workspace들이 생성될 temp 루트"""
    return tmp_path / "shorts-api"


@pytest.fixture
def pipeline_config(tmp_root) -> PipelineConfig:
    """테스트용 파이프라인 설정 (작은 업로드 상한)"""
    return PipelineConfig(
        tmp_root=tmp_root,
        max_upload_bytes=64 * 1024,
        upload_chunk_bytes=4096,
        transcode_timeout_sec=30.0,
    )


@pytest.fixture
def workspace_manager(tmp_root) -> WorkspaceManager:
    return WorkspaceManager(root=tmp_root)


# ========================================
# Fake / Service Fixtures
# ========================================

@pytest.fixture
def fake_runner() -> FakeProcessRunner:
    """ffmpeg/ffprobe 대신 사용하는 Fake 실행기 (기본: 1080x1920, 30s)"""
    return FakeProcessRunner()


@pytest.fixture
def pipeline_service(pipeline_config, fake_runner):
    return create_shorts_pipeline_service(pipeline_config, runner=fake_runner)


@pytest.fixture
def file_service(pipeline_config):
    return create_file_service(pipeline_config)


# ========================================
# Application Fixtures
# ========================================

@pytest.fixture
def app(pipeline_config, pipeline_service, file_service):
    """FastAPI 애플리케이션 인스턴스 (의존성은 Fake로 교체)"""
    from app.main import app as fastapi_app
    from app.common.dependencies import get_file_service, get_pipeline_config, get_pipeline_service

    fastapi_app.dependency_overrides[get_pipeline_config] = lambda: pipeline_config
    fastapi_app.dependency_overrides[get_pipeline_service] = lambda: pipeline_service
    fastapi_app.dependency_overrides[get_file_service] = lambda: file_service
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """FastAPI TestClient (API 테스트용)"""
    return TestClient(app)


# ========================================
# Sample Data Fixtures
# ========================================

@pytest.fixture
def sample_video_bytes() -> bytes:
    """업로드용 가짜 비디오 내용"""
    return b"\x00\x00\x00\x18ftypmp42" + b"fake video payload " * 64
