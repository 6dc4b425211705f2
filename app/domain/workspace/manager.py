"""
요청별 작업 디렉토리(Workspace) 관리
- 요청마다 고유한 디렉토리를 temp 루트 아래에 생성
- 파이프라인이 쓰는 모든 경로가 해당 디렉토리 안에 있는지 검증
- 정리는 best-effort, 요청당 정확히 1회
"""
import logging
import os
import shutil
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from app.common.errors import ErrorCode, PipelineError

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Workspace:
    """한 요청이 독점하는 staging 디렉토리"""
    request_id: str
    path: Path
    _destroyed: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _claim_destroy(self) -> bool:
        with self._lock:
            if self._destroyed:
                return False
            self._destroyed = True
            return True


class WorkspaceManager:
    """temp 루트 아래 Workspace 생성/경로 검증/삭제"""

    def __init__(self, root: Path):
        self.root = Path(root)

    def create_workspace(self) -> Workspace:
        request_id = uuid.uuid4().hex
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            root = self.root.resolve()
            path = root / request_id
            # 이름 충돌 시 예외 (uuid4 기준 사실상 발생하지 않음)
            path.mkdir(mode=0o700)
        except OSError as e:
            logger.error(f"❌ workspace 생성 실패 (root={self.root}): {e}")
            raise PipelineError(ErrorCode.RESOURCE, "Temporary storage is not available.") from e

        logger.debug(f"[{request_id}] workspace 생성: {path}")
        return Workspace(request_id=request_id, path=path)

    def resolve_within(self, workspace: Workspace, name: str) -> Path:
        """
        workspace 하위 경로 생성

        Args:
            workspace: 대상 workspace
            name: 파일명 (디렉토리 구분자/상위 이동 금지)

        Returns:
            workspace 안쪽으로 resolve된 절대 경로

        Raises:
            PipelineError(INVALID_PATH)
        """
        if (
            not name
            or "\x00" in name
            or "/" in name
            or "\\" in name
            or name in (".", "..")
            or os.path.isabs(name)
        ):
            raise PipelineError(ErrorCode.INVALID_PATH, "Path traversal detected.")
        return self.ensure_within(workspace, workspace.path / name)

    def ensure_within(self, workspace: Workspace, path: Path) -> Path:
        """경로가 workspace(및 temp 루트) 안쪽인지 확인"""
        resolved = Path(path).resolve()
        base = workspace.path.resolve()
        root = self.root.resolve()
        if not (_is_strict_child(resolved, base) and _is_strict_child(base, root)):
            raise PipelineError(ErrorCode.INVALID_PATH, "Path must be inside the request workspace.")
        return resolved

    def destroy(self, workspace: Workspace) -> bool:
        """
        workspace 재귀 삭제. 여러 번 호출되어도 실제 삭제는 1회.
        개별 항목 삭제 실패는 무시하고 나머지를 계속 지운다.

        Returns:
            이번 호출에서 삭제를 수행했으면 True
        """
        if not workspace._claim_destroy():
            return False

        if workspace.path.exists():
            shutil.rmtree(workspace.path, ignore_errors=True)

        if workspace.path.exists():
            logger.warning(f"[{workspace.request_id}] ⚠️ workspace 일부가 남아 있음: {workspace.path}")
        else:
            logger.debug(f"[{workspace.request_id}] 🗑️ workspace 삭제: {workspace.path}")
        return True


def _is_strict_child(path: Path, parent: Path) -> bool:
    return path != parent and parent in path.parents
