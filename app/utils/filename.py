"""
다운로드용 파일명 정리
Content-Disposition 힌트에만 사용, 디스크 경로 생성에는 절대 사용하지 않음
"""
import re

DEFAULT_BASENAME = "video"
DEFAULT_EXTENSION = ".mp4"
CONVERTED_PREFIX = "shorts_"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")
_SAFE_EXT = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


def sanitize_filename(name: str, max_length: int = 200) -> str:
    """허용 문자(영숫자 . - _) 외에는 '_' 로 치환, 길이 제한, 비면 기본값"""
    cleaned = _UNSAFE.sub("_", name or "")[:max_length]
    return cleaned or DEFAULT_BASENAME[:max_length]


def split_display_name(raw: str) -> tuple[str, str]:
    """
    업로드 원본 이름을 (base, ext)로 분리

    - 경로 구분자(/, \\) 앞부분은 버림
    - 확장자가 이상하면 .mp4
    """
    name = (raw or "").replace("\\", "/").rsplit("/", 1)[-1]
    dot = name.rfind(".")
    if dot > 0:
        base, ext = name[:dot], name[dot:]
    else:
        base, ext = name, ""
    if not _SAFE_EXT.match(ext):
        ext = DEFAULT_EXTENSION
    return base, ext


def disposition_filename(raw: str, converted: bool, max_length: int = 200) -> str:
    """
    응답 Content-Disposition 파일명

    변환됨: shorts_<base><ext>, 아니면 <base><ext>
    전체 길이는 max_length 이하
    """
    base, ext = split_display_name(raw)
    prefix = CONVERTED_PREFIX if converted else ""
    budget = max(1, max_length - len(prefix) - len(ext))
    return f"{prefix}{sanitize_filename(base, budget)}{ext}"[:max_length]
