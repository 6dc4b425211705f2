"""
쇼츠 변환 Service Layer
요청 단위 파이프라인: staging → probe → 판정 → (skip | 변환) → 응답 스트리밍 → 정리
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

from app.common.errors import ErrorCode, PipelineError
from app.domain.eligibility.evaluator import evaluate_eligibility
from app.domain.workspace.manager import Workspace, WorkspaceManager
from app.infrastructure.media.prober import FFprobeProber
from app.infrastructure.media.transcoder import FFmpegTranscoder
from app.schemas.inspect_response import InspectResponse
from app.schemas.options_dto import ProcessingOptions
from app.schemas.video_dto import ConversionOutcome, EligibilityResult, VideoMetadata
from app.services.file_service import StagedUpload

logger = logging.getLogger(__name__)

OUTPUT_FILENAME = "output.mp4"
STREAM_CHUNK_BYTES = 1024 * 1024


class PipelineState(str, Enum):
    STAGED = "STAGED"
    PROBED = "PROBED"
    EVALUATED = "EVALUATED"
    SKIPPED = "SKIPPED"
    CONVERTED = "CONVERTED"
    EMITTED = "EMITTED"
    DONE = "DONE"
    FAILED = "FAILED"


# 허용 전이. FAILED는 DONE을 제외한 모든 상태에서 진입 가능
_TRANSITIONS = {
    PipelineState.STAGED: {PipelineState.PROBED},
    PipelineState.PROBED: {PipelineState.EVALUATED},
    # inspect는 판정 직후 종료
    PipelineState.EVALUATED: {PipelineState.SKIPPED, PipelineState.CONVERTED, PipelineState.DONE},
    # 스트리밍 시작 전 연결이 끊기면 바로 DONE
    PipelineState.SKIPPED: {PipelineState.EMITTED, PipelineState.DONE},
    PipelineState.CONVERTED: {PipelineState.EMITTED, PipelineState.DONE},
    PipelineState.EMITTED: {PipelineState.DONE},
    PipelineState.FAILED: {PipelineState.DONE},
    PipelineState.DONE: set(),
}


@dataclass(eq=False)
class PipelineRun:
    """요청 1건의 파이프라인 상태"""
    upload: StagedUpload
    options: ProcessingOptions
    state: PipelineState = PipelineState.STAGED
    history: list = field(default_factory=lambda: [PipelineState.STAGED])
    error: Optional[PipelineError] = None
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def request_id(self) -> str:
        return self.upload.request_id

    @property
    def workspace(self) -> Workspace:
        return self.upload.workspace

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)

    def advance(self, new_state: PipelineState) -> None:
        allowed = set(_TRANSITIONS[self.state])
        if self.state not in (PipelineState.DONE, PipelineState.FAILED):
            allowed.add(PipelineState.FAILED)
        if new_state not in allowed:
            raise RuntimeError(f"illegal pipeline transition {self.state.value} → {new_state.value}")
        self.state = new_state
        self.history.append(new_state)


class ShortsPipelineService:
    """
    쇼츠 변환 메인 서비스

    책임:
    - 요청 단위 상태 머신 진행
    - 모든 실패를 고정 에러 코드로 분류
    - 어떤 경로로 끝나든 workspace를 정확히 1번 삭제
    """

    def __init__(
        self,
        workspaces: WorkspaceManager,
        prober: FFprobeProber,
        transcoder: FFmpegTranscoder,
        chunk_bytes: int = STREAM_CHUNK_BYTES,
    ):
        """
        Args:
            workspaces: workspace 관리자
            prober: 메타데이터 추출기 (ffprobe)
            transcoder: 변환기 (ffmpeg)
            chunk_bytes: 응답 스트리밍 청크 크기
        """
        self.workspaces = workspaces
        self.prober = prober
        self.transcoder = transcoder
        self.chunk_bytes = chunk_bytes

    # ========== Inspect ==========
    async def inspect(self, upload: StagedUpload, options: ProcessingOptions) -> InspectResponse:
        """메타데이터 + 판정만 반환 (파일 출력 없음)"""
        run = PipelineRun(upload=upload, options=options)
        try:
            metadata, eligibility = await self._guard(run, self._probe_and_evaluate(run))
        finally:
            self.release(run)

        logger.info(
            f"[{run.request_id}] inspect | {metadata.width}x{metadata.height} "
            f"{metadata.duration_sec}s | eligible={eligibility.eligible} | {run.elapsed_ms}ms"
        )
        return InspectResponse(
            width=metadata.width,
            height=metadata.height,
            durationSec=round(metadata.duration_sec, 3),
            aspectRatio=round(metadata.aspect_ratio, 3),
            shortsEligible=eligibility.eligible,
            reason=list(eligibility.violations),
        )

    # ========== Process ==========
    async def prepare(
        self, upload: StagedUpload, options: ProcessingOptions
    ) -> tuple[PipelineRun, ConversionOutcome]:
        """
        probe → 판정 → (필요 시) 변환까지 실행

        성공 시 workspace는 유지된 채 반환되며, stream()/release()가 정리한다.
        실패 시 workspace는 이미 삭제된 상태로 PipelineError가 전파된다.
        """
        run = PipelineRun(upload=upload, options=options)
        outcome = await self._guard(run, self._convert_if_needed(run))

        logger.info(
            f"[{run.request_id}] process/shorts | original "
            f"{outcome.original_metadata.width}x{outcome.original_metadata.height} "
            f"{outcome.original_metadata.duration_sec}s | eligible={outcome.eligibility.eligible} "
            f"converted={outcome.converted} | {run.elapsed_ms}ms"
        )
        return run, outcome

    async def stream(self, run: PipelineRun, outcome: ConversionOutcome) -> AsyncIterator[bytes]:
        """
        결과 파일을 청크 단위로 내보냄

        완료, 클라이언트 연결 종료(generator close), 읽기 오류 어느 경우든
        마지막에 workspace를 삭제한다.
        """
        completed = False
        try:
            run.advance(PipelineState.EMITTED)
            with open(outcome.output_path, "rb") as f:
                while chunk := await asyncio.to_thread(f.read, self.chunk_bytes):
                    yield chunk
            completed = True
        except Exception as e:
            logger.error(f"[{run.request_id}] ❌ stream error: {e}")
            raise
        finally:
            if not completed and run.state not in (PipelineState.DONE, PipelineState.FAILED):
                logger.warning(f"[{run.request_id}] ⚠️ 응답 스트리밍 중단 (state={run.state.value})")
                run.advance(PipelineState.FAILED)
            self.release(run)

    def release(self, run: PipelineRun) -> None:
        """workspace 정리 (멱등, 예외를 던지지 않음)"""
        if run.state == PipelineState.DONE:
            return
        run.advance(PipelineState.DONE)
        try:
            self.workspaces.destroy(run.workspace)
        except Exception as e:
            logger.warning(f"[{run.request_id}] workspace 정리 실패: {e}")
        logger.debug(f"[{run.request_id}] 상태 이력: {' → '.join(s.value for s in run.history)}")

    # ========== 내부 단계 ==========
    async def _probe_and_evaluate(self, run: PipelineRun) -> tuple[VideoMetadata, EligibilityResult]:
        # Step 1: staging 경로 검증 후 probe
        staged_path = self.workspaces.ensure_within(run.workspace, run.upload.path)
        metadata = await self.prober.probe(staged_path)
        run.advance(PipelineState.PROBED)

        # Step 2: 판정 (실패하지 않음)
        eligibility = evaluate_eligibility(metadata, run.options)
        run.advance(PipelineState.EVALUATED)
        return metadata, eligibility

    async def _convert_if_needed(self, run: PipelineRun) -> ConversionOutcome:
        metadata, eligibility = await self._probe_and_evaluate(run)
        options = run.options

        # Step 3: 변환 여부 결정
        if not options.force_convert and eligibility.eligible:
            run.advance(PipelineState.SKIPPED)
            return ConversionOutcome(
                output_path=run.upload.path,
                converted=False,
                mode_used=options.mode,
                original_metadata=metadata,
                final_metadata=metadata,
                eligibility=eligibility,
            )

        # Step 4: 변환 (출력 파일명은 고정, 사용자 입력 없음)
        output_path = self.workspaces.resolve_within(run.workspace, OUTPUT_FILENAME)
        await self.transcoder.convert(run.upload.path, output_path, options)
        run.advance(PipelineState.CONVERTED)

        return ConversionOutcome(
            output_path=output_path,
            converted=True,
            mode_used=options.mode,
            original_metadata=metadata,
            # 출력은 다시 probe하지 않고 요청한 해상도를 그대로 보고
            final_metadata=metadata.with_geometry(options.target_width, options.target_height),
            eligibility=eligibility,
        )

    async def _guard(self, run: PipelineRun, step):
        """단계 실행 중 실패 시 FAILED 전이 + workspace 정리 + 에러 분류"""
        try:
            return await step
        except PipelineError as e:
            self._fail(run, e)
            raise
        except Exception as e:
            logger.error(f"[{run.request_id}] ❌ 예상치 못한 오류: {e}", exc_info=True)
            error = PipelineError(ErrorCode.UNKNOWN, "Unexpected processing error.")
            self._fail(run, error)
            raise error from e
        except BaseException:
            # 요청 취소 등
            self._fail(run, None)
            raise

    def _fail(self, run: PipelineRun, error: Optional[PipelineError]) -> None:
        if run.state not in (PipelineState.DONE, PipelineState.FAILED):
            run.advance(PipelineState.FAILED)
        run.error = error
        if error is not None:
            logger.warning(
                f"[{run.request_id}] ❌ {error.code.value}: {error.message} | {run.elapsed_ms}ms"
            )
        else:
            logger.warning(f"[{run.request_id}] 요청 취소됨 | {run.elapsed_ms}ms")
        self.release(run)
