"""시그널링 서버 설정.

포트, CORS 허용 origin, 실행 환경, 로그 관련 설정을 환경변수에서 읽습니다.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


def _split_origins(value: str) -> Tuple[str, ...]:
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


@dataclass(frozen=True)
class ServerConfig:
    """시그널링 서버 설정."""

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3001"))

    # CORS 허용 origin (쉼표 구분)
    ALLOWED_ORIGINS: Tuple[str, ...] = field(
        default_factory=lambda: _split_origins(os.getenv("FRONTEND_URL", "http://localhost:3000"))
    )

    # 실행 환경 태그 (헬스체크 응답에 포함)
    ENV: str = os.getenv("ENV") or os.getenv("NODE_ENV") or "development"

    # 로그
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
    LOG_RETENTION_DAYS: int = int(os.getenv("LOG_RETENTION_DAYS", "60"))


server_config = ServerConfig()

logger.info(f"[Server Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
