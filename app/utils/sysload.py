# app/utils/sysload.py
import os
import shutil
from pathlib import Path


def binary_available(binary: str) -> bool:
    """실행 파일이 PATH(또는 절대경로)에 있는지 간단히 확인"""
    return shutil.which(binary) is not None


def directory_writable(path: Path) -> bool:
    """디렉토리(없으면 생성 시도)에 쓰기 가능한지"""
    try:
        Path(path).mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return os.access(path, os.W_OK | os.X_OK)
