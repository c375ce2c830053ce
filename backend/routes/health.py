"""Health Check API 라우터.

프로세스 상태 확인을 위한 readiness 엔드포인트를 제공합니다.
룸 레지스트리 상태는 반영하지 않습니다.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from walkie.signaling import server_config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """프로세스 상태를 확인합니다.

    Returns:
        dict: 상태, 현재 시각(ISO-8601 UTC), 실행 환경 태그
    """
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": server_config.ENV,
    }
