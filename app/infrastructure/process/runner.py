"""
외부 프로세스 실행 capability
Prober/Transcoder는 이 인터페이스에만 의존 (테스트에서는 Fake로 교체)
"""
import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

# SIGKILL 이후 프로세스 회수(reap)까지 기다리는 시간(초)
KILL_GRACE_SEC = 5.0


@dataclass(frozen=True)
class ProcessResult:
    args: tuple
    returncode: int
    stdout: bytes
    stderr: bytes
    duration_ms: int = 0

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


class ProcessStartError(Exception):
    """실행 파일이 없거나 실행 권한이 없어 프로세스를 시작하지 못함"""


class ProcessTimeoutError(Exception):
    """실행 시간 예산 초과로 강제 종료됨"""

    def __init__(self, message: str, pid: Optional[int] = None, killed: bool = True):
        super().__init__(message)
        self.pid = pid
        self.killed = killed


class CompletionGuard:
    """
    1회성 완료 가드
    타임아웃 콜백과 정상 종료 경로 중 먼저 claim()한 쪽만 결과를 확정한다.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._outcome: Optional[str] = None

    def claim(self, outcome: str) -> bool:
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = outcome
            return True

    @property
    def outcome(self) -> Optional[str]:
        return self._outcome


class ProcessRunner(ABC):
    """'인자 벡터로 실행 → stdout/stderr/exit code' 계약"""

    @abstractmethod
    async def run(self, args: Sequence[str], timeout: Optional[float] = None) -> ProcessResult:
        """
        외부 프로세스를 셸 해석 없이 실행하고 종료까지 대기

        Args:
            args: 실행 파일 + 인자
            timeout: 벽시계 기준 실행 예산(초). None이면 제한 없음

        Raises:
            ProcessStartError: 프로세스 시작 실패
            ProcessTimeoutError: 예산 초과 (프로세스는 강제 종료됨)
        """
        raise NotImplementedError


class AsyncioProcessRunner(ProcessRunner):
    """asyncio.create_subprocess_exec 기반 구현"""

    def __init__(self, kill_grace_sec: float = KILL_GRACE_SEC):
        self.kill_grace_sec = kill_grace_sec

    async def run(self, args: Sequence[str], timeout: Optional[float] = None) -> ProcessResult:
        argv = tuple(str(a) for a in args)
        t0 = time.perf_counter()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessStartError(f"{argv[0]} spawn failed: {e}") from e

        guard = CompletionGuard()
        loop = asyncio.get_running_loop()

        def _on_deadline():
            if guard.claim("timeout"):
                logger.warning(f"⏱️ {argv[0]} (pid={proc.pid}) {timeout}s 초과 → SIGKILL")
                _kill(proc)

        deadline = loop.call_later(timeout, _on_deadline) if timeout else None
        # 타이머가 발동했는데도 kill이 듣지 않는 경우를 위한 상한
        hard_limit = timeout + self.kill_grace_sec if timeout else None

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=hard_limit)
        except asyncio.TimeoutError:
            guard.claim("timeout")
            _kill(proc)
            try:
                await asyncio.wait_for(proc.wait(), timeout=self.kill_grace_sec)
            except asyncio.TimeoutError:
                pass
            else:
                logger.warning(f"⚠️ {argv[0]} (pid={proc.pid}) 추가 대기 후 회수됨")
                raise ProcessTimeoutError(
                    f"{argv[0]} exceeded {timeout}s and was killed",
                    pid=proc.pid,
                    killed=True,
                )
            logger.error(f"❌ {argv[0]} (pid={proc.pid}) 강제 종료 후에도 회수되지 않음")
            raise ProcessTimeoutError(
                f"{argv[0]} exceeded {timeout}s and could not be reaped",
                pid=proc.pid,
                killed=False,
            )
        except asyncio.CancelledError:
            # 요청 취소(클라이언트 연결 종료 등) → 자식 프로세스도 정리
            if guard.claim("cancelled"):
                _kill(proc)
            raise
        finally:
            if deadline is not None:
                deadline.cancel()

        duration_ms = int((time.perf_counter() - t0) * 1000)

        if not guard.claim("exited"):
            raise ProcessTimeoutError(
                f"{argv[0]} exceeded {timeout}s and was killed",
                pid=proc.pid,
                killed=True,
            )

        return ProcessResult(
            args=argv,
            returncode=proc.returncode,
            stdout=stdout or b"",
            stderr=stderr or b"",
            duration_ms=duration_ms,
        )


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        # 이미 종료됨
        pass
