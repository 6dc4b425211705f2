"""
Service Layer Tests

쇼츠 변환 파이프라인 (상태 머신 / 조건부 변환 / workspace 정리) 테스트
"""
import asyncio

import pytest

from app.common.errors import ErrorCode, PipelineError
from app.config.pipeline_config import PipelineConfig
from app.infrastructure.media.prober import FFprobeProber
from app.infrastructure.media.transcoder import FFmpegTranscoder
from app.schemas.options_dto import ConversionMode, ProcessingOptions
from app.services.service_factory import create_file_service, create_shorts_pipeline_service
from app.services.shorts_pipeline_service import PipelineRun, PipelineState, ShortsPipelineService
from app.utils.streaming import CleanupStreamingResponse
from tests.test_helpers import (
    FakeProcessRunner,
    build_probe_payload,
    stage_bytes,
    start_error,
    timeout_error,
    workspace_dirs,
)


async def _collect(agen) -> bytes:
    out = b""
    async for chunk in agen:
        out += chunk
    return out


class TestShortsPipelineService:
    """정상 경로 테스트"""

    @pytest.mark.asyncio
    async def test_eligible_video_is_streamed_unchanged(self, pipeline_service, workspace_manager, fake_runner, tmp_root):
        """조건 충족 영상은 변환 없이 원본 바이트 그대로"""
        upload = stage_bytes(workspace_manager, b"original-bytes" * 100)

        run, outcome = await pipeline_service.prepare(upload, ProcessingOptions())
        body = await _collect(pipeline_service.stream(run, outcome))

        assert body == b"original-bytes" * 100
        assert outcome.converted is False
        assert outcome.final_metadata == outcome.original_metadata
        assert fake_runner.ffmpeg_calls == []
        assert run.history == [
            PipelineState.STAGED,
            PipelineState.PROBED,
            PipelineState.EVALUATED,
            PipelineState.SKIPPED,
            PipelineState.EMITTED,
            PipelineState.DONE,
        ]
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_landscape_video_is_converted(self, pipeline_service, workspace_manager, fake_runner, tmp_root):
        """가로 영상은 변환되고 최종 메타데이터는 목표 해상도"""
        fake_runner.probe_payload = build_probe_payload(952, 718, "10.0")
        upload = stage_bytes(workspace_manager)
        options = ProcessingOptions(mode=ConversionMode.pad, target_width=720, target_height=1280)

        run, outcome = await pipeline_service.prepare(upload, options)

        assert outcome.converted is True
        assert outcome.mode_used == ConversionMode.pad
        assert outcome.output_path.name == "output.mp4"
        assert outcome.output_path.parent == upload.workspace.path
        assert (outcome.final_metadata.width, outcome.final_metadata.height) == (720, 1280)
        assert outcome.final_metadata.aspect_ratio == pytest.approx(720 / 1280)
        assert (outcome.original_metadata.width, outcome.original_metadata.height) == (952, 718)
        assert outcome.eligibility.violations == ["NOT_VERTICAL", "ASPECT_RATIO_MISMATCH"]
        assert run.state == PipelineState.CONVERTED

        body = await _collect(pipeline_service.stream(run, outcome))

        assert body == fake_runner.converted_bytes
        assert run.state == PipelineState.DONE
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_force_convert_transcodes_eligible_video(self, pipeline_service, workspace_manager, fake_runner):
        upload = stage_bytes(workspace_manager)

        run, outcome = await pipeline_service.prepare(upload, ProcessingOptions(force_convert=True))
        await _collect(pipeline_service.stream(run, outcome))

        assert outcome.converted is True
        assert outcome.eligibility.eligible is True
        assert len(fake_runner.ffmpeg_calls) == 1

    @pytest.mark.asyncio
    async def test_probe_runs_on_staged_file(self, pipeline_service, workspace_manager, fake_runner):
        upload = stage_bytes(workspace_manager)

        run, outcome = await pipeline_service.prepare(upload, ProcessingOptions())
        pipeline_service.release(run)

        assert fake_runner.ffprobe_calls[0][-1] == str(upload.path)

    @pytest.mark.asyncio
    async def test_inspect_returns_rounded_metadata(self, pipeline_service, workspace_manager, fake_runner, tmp_root):
        fake_runner.probe_payload = build_probe_payload(952, 718, "10.123456")
        upload = stage_bytes(workspace_manager)

        result = await pipeline_service.inspect(upload, ProcessingOptions())

        assert result.width == 952
        assert result.height == 718
        assert result.durationSec == 10.123
        assert result.aspectRatio == 1.326
        assert result.shortsEligible is False
        assert result.reason == ["NOT_VERTICAL", "ASPECT_RATIO_MISMATCH"]
        assert fake_runner.ffmpeg_calls == []
        assert workspace_dirs(tmp_root) == []


class TestServiceErrorHandling:
    """실패 경로 테스트: 에러 코드 분류 + workspace 정리"""

    @pytest.mark.asyncio
    async def test_probe_failure(self, pipeline_service, workspace_manager, fake_runner, tmp_root):
        fake_runner.probe_returncode = 1
        fake_runner.probe_stderr = b"moov atom not found"
        upload = stage_bytes(workspace_manager)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline_service.prepare(upload, ProcessingOptions())

        assert exc_info.value.code == ErrorCode.PROBE_FAILED
        assert "moov atom not found" in exc_info.value.detail
        assert upload.workspace.destroyed is True
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_probe_unavailable(self, pipeline_service, workspace_manager, fake_runner, tmp_root):
        fake_runner.probe_error = start_error("ffprobe")
        upload = stage_bytes(workspace_manager)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline_service.inspect(upload, ProcessingOptions())

        assert exc_info.value.code == ErrorCode.PROBE_UNAVAILABLE
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_conversion_timeout(self, pipeline_service, workspace_manager, fake_runner, tmp_root):
        fake_runner.probe_payload = build_probe_payload(1920, 1080)
        fake_runner.ffmpeg_error = timeout_error()
        upload = stage_bytes(workspace_manager)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline_service.prepare(upload, ProcessingOptions())

        assert exc_info.value.code == ErrorCode.CONVERSION_TIMEOUT
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_conversion_failure(self, pipeline_service, workspace_manager, fake_runner, tmp_root):
        fake_runner.probe_payload = build_probe_payload(1920, 1080)
        fake_runner.ffmpeg_returncode = 187
        upload = stage_bytes(workspace_manager)

        with pytest.raises(PipelineError) as exc_info:
            await pipeline_service.prepare(upload, ProcessingOptions())

        assert exc_info.value.code == ErrorCode.CONVERSION_FAILED
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_failed_run_ends_in_done(self, pipeline_config, workspace_manager, fake_runner):
        """FAILED → DONE 순서로 종료되고 에러가 기록됨"""
        fake_runner.probe_error = start_error("ffprobe")
        service = create_shorts_pipeline_service(pipeline_config, runner=fake_runner)
        upload = stage_bytes(workspace_manager)
        run = PipelineRun(upload=upload, options=ProcessingOptions())

        with pytest.raises(PipelineError):
            await service._guard(run, service._probe_and_evaluate(run))

        assert run.history == [PipelineState.STAGED, PipelineState.FAILED, PipelineState.DONE]
        assert run.error.code == ErrorCode.PROBE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unexpected_error_is_unknown(self, workspace_manager, fake_runner, tmp_root):
        class BrokenTranscoder(FFmpegTranscoder):
            async def convert(self, input_path, output_path, options):
                raise ValueError("boom")

        fake_runner.probe_payload = build_probe_payload(1920, 1080)
        service = ShortsPipelineService(
            workspaces=workspace_manager,
            prober=FFprobeProber(fake_runner),
            transcoder=BrokenTranscoder(fake_runner),
        )
        upload = stage_bytes(workspace_manager)

        with pytest.raises(PipelineError) as exc_info:
            await service.prepare(upload, ProcessingOptions())

        assert exc_info.value.code == ErrorCode.UNKNOWN
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_cancellation_cleans_workspace(self, pipeline_service, workspace_manager, fake_runner, tmp_root):
        fake_runner.probe_payload = build_probe_payload(1920, 1080)
        fake_runner.ffmpeg_error = asyncio.CancelledError()
        upload = stage_bytes(workspace_manager)

        with pytest.raises(asyncio.CancelledError):
            await pipeline_service.prepare(upload, ProcessingOptions())

        assert upload.workspace.destroyed is True
        assert workspace_dirs(tmp_root) == []


class TestStreamingCleanup:
    """응답 스트리밍 중단 시 정리 테스트"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("asgi_spec_version", ["2.3", "2.4"])
    async def test_send_failure_mid_body_releases_workspace(
        self, pipeline_service, workspace_manager, tmp_root, asgi_spec_version
    ):
        """전송 중 send가 실패해도 응답 호출이 끝나는 시점에 workspace가 정리됨"""
        upload = stage_bytes(workspace_manager, b"0123456789" * 10)
        run, outcome = await pipeline_service.prepare(upload, ProcessingOptions())
        response = CleanupStreamingResponse(
            pipeline_service.stream(run, outcome),
            on_close=lambda: pipeline_service.release(run),
            media_type="video/mp4",
        )
        sent = []

        async def send(message):
            sent.append(message["type"])
            if message["type"] == "http.response.body":
                raise OSError("Connection reset by peer")

        async def receive():
            await asyncio.Event().wait()

        scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": asgi_spec_version},
            "method": "POST",
            "path": "/process/shorts",
            "headers": [],
        }

        with pytest.raises(Exception):
            await response(scope, receive, send)

        assert sent[:2] == ["http.response.start", "http.response.body"]
        assert run.history[-3:] == [PipelineState.EMITTED, PipelineState.FAILED, PipelineState.DONE]
        assert upload.workspace.destroyed is True
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_completed_response_releases_once(self, pipeline_service, workspace_manager, tmp_root):
        upload = stage_bytes(workspace_manager, b"payload")
        run, outcome = await pipeline_service.prepare(upload, ProcessingOptions())
        response = CleanupStreamingResponse(
            pipeline_service.stream(run, outcome),
            on_close=lambda: pipeline_service.release(run),
            media_type="video/mp4",
        )
        body = []

        async def send(message):
            if message["type"] == "http.response.body":
                body.append(message.get("body", b""))

        async def receive():
            await asyncio.Event().wait()

        scope = {"type": "http", "asgi": {"version": "3.0", "spec_version": "2.4"}, "method": "POST", "headers": []}
        await response(scope, receive, send)

        assert b"".join(body) == b"payload"
        assert run.history.count(PipelineState.DONE) == 1
        assert PipelineState.FAILED not in run.history
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_client_disconnect_mid_stream(self, workspace_manager, fake_runner, tmp_root):
        service = ShortsPipelineService(
            workspaces=workspace_manager,
            prober=FFprobeProber(fake_runner),
            transcoder=FFmpegTranscoder(fake_runner),
            chunk_bytes=4,
        )
        upload = stage_bytes(workspace_manager, b"0123456789abcdef")
        run, outcome = await service.prepare(upload, ProcessingOptions())

        agen = service.stream(run, outcome)
        first = await agen.__anext__()
        await agen.aclose()

        assert first == b"0123"
        assert run.history[-3:] == [PipelineState.EMITTED, PipelineState.FAILED, PipelineState.DONE]
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_release_without_streaming(self, pipeline_service, workspace_manager, tmp_root):
        """스트리밍 시작 전에 연결이 끊겨도 정리됨"""
        upload = stage_bytes(workspace_manager)
        run, _ = await pipeline_service.prepare(upload, ProcessingOptions())

        pipeline_service.release(run)
        pipeline_service.release(run)

        assert run.history[-2:] == [PipelineState.SKIPPED, PipelineState.DONE]
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_release_after_stream_is_noop(self, pipeline_service, workspace_manager):
        upload = stage_bytes(workspace_manager)
        run, outcome = await pipeline_service.prepare(upload, ProcessingOptions())
        await _collect(pipeline_service.stream(run, outcome))

        pipeline_service.release(run)

        assert run.history.count(PipelineState.DONE) == 1


class TestPipelineRun:
    """상태 전이 규칙 테스트"""

    def test_illegal_transition_rejected(self, workspace_manager):
        run = PipelineRun(upload=stage_bytes(workspace_manager), options=ProcessingOptions())

        with pytest.raises(RuntimeError):
            run.advance(PipelineState.CONVERTED)

    def test_done_is_terminal(self, workspace_manager):
        run = PipelineRun(upload=stage_bytes(workspace_manager), options=ProcessingOptions())
        run.advance(PipelineState.FAILED)
        run.advance(PipelineState.DONE)

        with pytest.raises(RuntimeError):
            run.advance(PipelineState.FAILED)


class TestServiceFactory:
    """Service Factory 테스트"""

    def test_create_services_share_config(self, tmp_path):
        config = PipelineConfig(
            tmp_root=tmp_path / "root",
            ffmpeg_binary="/usr/local/bin/ffmpeg",
            transcode_timeout_sec=42,
        )

        service = create_shorts_pipeline_service(config, runner=FakeProcessRunner())
        files = create_file_service(config)

        assert isinstance(service, ShortsPipelineService)
        assert service.transcoder.binary == "/usr/local/bin/ffmpeg"
        assert service.transcoder.timeout_sec == 42
        assert service.workspaces.root == files.workspaces.root == tmp_path / "root"
        assert files.max_bytes == config.max_upload_bytes


def _upload_file(data: bytes, filename="clip.mp4", content_type="video/mp4"):
    import io

    from fastapi import UploadFile
    from starlette.datastructures import Headers

    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


class TestFileService:
    """업로드 staging 테스트"""

    @pytest.mark.asyncio
    async def test_stage_writes_into_workspace(self, file_service, tmp_root):
        staged = await file_service.stage_upload(_upload_file(b"abc" * 1000, filename="../../evil.MOV"))

        assert staged.path.parent == staged.workspace.path
        assert staged.path.name == "source.mov"
        assert staged.path.read_bytes() == b"abc" * 1000
        assert staged.size_bytes == 3000
        assert staged.display_name == "../../evil.MOV"
        assert [p.name for p in workspace_dirs(tmp_root)] == [staged.request_id]

    @pytest.mark.asyncio
    async def test_stage_rejects_oversized_stream(self, file_service, tmp_root):
        """Content-Length 없이도 누적 크기로 상한 검사"""
        data = b"x" * (file_service.max_bytes + 1)

        with pytest.raises(PipelineError) as exc_info:
            await file_service.stage_upload(_upload_file(data))

        assert exc_info.value.code == ErrorCode.INPUT_TOO_LARGE
        assert exc_info.value.status_code == 413
        assert workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    async def test_stage_accepts_exact_limit(self, file_service):
        staged = await file_service.stage_upload(_upload_file(b"x" * file_service.max_bytes))

        assert staged.size_bytes == file_service.max_bytes

    @pytest.mark.asyncio
    async def test_stage_rejects_declared_oversize_before_reading(self, file_service, tmp_root):
        with pytest.raises(PipelineError) as exc_info:
            await file_service.stage_upload(_upload_file(b"x"), declared_length=10 * file_service.max_bytes)

        assert exc_info.value.code == ErrorCode.INPUT_TOO_LARGE
        assert not tmp_root.exists() or workspace_dirs(tmp_root) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mime", ["text/plain", "image/png", "application/octet-stream", ""])
    async def test_stage_rejects_non_video(self, file_service, mime):
        with pytest.raises(PipelineError) as exc_info:
            await file_service.stage_upload(_upload_file(b"data", content_type=mime))

        assert exc_info.value.code == ErrorCode.UNSUPPORTED_MEDIA

    @pytest.mark.asyncio
    async def test_stage_accepts_any_video_subtype(self, file_service):
        staged = await file_service.stage_upload(_upload_file(b"data", filename="a.3gp", content_type="video/3gpp"))

        assert staged.content_type == "video/3gpp"

    @pytest.mark.asyncio
    async def test_stage_without_file(self, file_service):
        with pytest.raises(PipelineError) as exc_info:
            await file_service.stage_upload(None)

        assert exc_info.value.code == ErrorCode.NO_INPUT
