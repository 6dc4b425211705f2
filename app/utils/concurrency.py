import asyncio
from contextlib import asynccontextmanager


class ConcurrencyGate:
    """
    ffmpeg 동시 실행 상한 (혼잡 방지, 서버 안정성↑)
    limit <= 0 이면 제한 없음 (바깥에서 프록시/프로세스 수로 제한하는 배포 기준)
    """

    def __init__(self, limit: int = 0):
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit) if limit > 0 else None

    @asynccontextmanager
    async def slot(self):
        if self._semaphore is None:
            yield
            return
        await self._semaphore.acquire()
        try:
            yield
        finally:
            self._semaphore.release()
