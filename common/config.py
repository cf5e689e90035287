"""설정 파일 로드"""

import os
from pathlib import Path

import yaml

DEFAULT_CONFIG_DIR = Path(__file__).parent.parent / "config"
CONFIG_FILES = ("database", "worker", "cache", "admin")


def config_dir() -> Path:
    """설정 디렉토리 (NOTIQ_CONFIG_DIR 환경변수로 변경 가능)"""
    return Path(os.environ.get("NOTIQ_CONFIG_DIR", DEFAULT_CONFIG_DIR))


def load_config(*names: str) -> dict:
    """
    config/{name}.yaml 파일들을 읽어 하나의 dict로 병합

    Args:
        names: 읽을 파일 이름 (확장자 제외). 생략하면 전체

    Returns:
        병합된 설정 (존재하지 않는 파일은 건너뜀)
    """
    config: dict = {}
    for name in names or CONFIG_FILES:
        path = config_dir() / f"{name}.yaml"
        if not path.exists():
            continue
        with open(path, encoding="utf-8") as f:
            config.update(yaml.safe_load(f) or {})
    return config
