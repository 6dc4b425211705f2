from typing import Callable

from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send


class CleanupStreamingResponse(StreamingResponse):
    """
    전송이 어떻게 끝나든 (완료 / 연결 끊김 / send 실패)
    body iterator를 닫고 정리 콜백을 호출하는 StreamingResponse

    StreamingResponse는 send 실패 시 background를 실행하지 않고
    body generator도 닫지 않으므로 여기서 직접 처리한다.
    """

    def __init__(self, content, on_close: Callable[[], None], **kwargs):
        super().__init__(content, **kwargs)
        self.on_close = on_close

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            aclose = getattr(self.body_iterator, "aclose", None)
            try:
                if aclose is not None:
                    await aclose()
            finally:
                self.on_close()
