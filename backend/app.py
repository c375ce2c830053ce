"""FastAPI Walkie-Talkie Signaling Server.

이 모듈은 룸 기반 푸시투토크 음성 통화를 위한 시그널링 서버를 제공합니다.
오디오는 참가자 간 WebRTC로 직접 흐르고, 서버는 연결 설정 메타데이터만 중계합니다.

주요 기능:
    - 룸 멤버십 관리 (입장/퇴장/연결 끊김 정리)
    - WebRTC offer/answer/ICE candidate 중계
    - 말하기 상태 브로드캐스트
    - 헬스체크 엔드포인트
    - CORS 허용 origin 설정

Architecture:
    - RoomRegistry: 룸 → 참가자 집합 (프로세스 메모리)
    - SignalingBroadcaster: 룸/참가자 단위 메시지 전달
    - RelaySession: 연결별 세션 핸들러
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from walkie.signaling import RoomRegistry, SignalingBroadcaster, server_config
from routes import (
    health_router, signaling_router, init_signaling_managers, close_all_sessions
)


def cleanup_old_logs(log_dir: str = server_config.LOG_DIR,
                     retention_days: int = server_config.LOG_RETENTION_DAYS) -> int:
    """보관 기간이 지난 server_YYYYMMDD.log 파일을 삭제합니다.

    Returns:
        삭제된 파일 수
    """
    if not os.path.exists(log_dir):
        return 0

    cutoff_date = datetime.now() - timedelta(days=retention_days)
    deleted_count = 0

    for filename in os.listdir(log_dir):
        if not (filename.startswith("server_") and filename.endswith(".log")):
            continue
        try:
            file_date = datetime.strptime(filename[len("server_"):-len(".log")], "%Y%m%d")
            if file_date < cutoff_date:
                os.remove(os.path.join(log_dir, filename))
                deleted_count += 1
        except (ValueError, OSError):
            continue

    return deleted_count


# 로그 설정
os.makedirs(server_config.LOG_DIR, exist_ok=True)
log_filename = os.path.join(server_config.LOG_DIR, f"server_{datetime.now().strftime('%Y%m%d')}.log")

logging.basicConfig(
    level=getattr(logging, server_config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(),  # 콘솔 출력
        logging.FileHandler(log_filename, encoding="utf-8"),  # 파일 저장
    ]
)
logger = logging.getLogger(__name__)
logger.info(f"로깅 초기화 완료: level={server_config.LOG_LEVEL}, env={server_config.ENV}")


# 서버 프로세스가 소유하는 룸 상태
registry = RoomRegistry()
broadcaster = SignalingBroadcaster()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI 앱의 생명주기를 관리하는 컨텍스트 매니저.

    시작 시 오래된 로그를 정리하고, 종료 시 모든 시그널링 세션을 정리합니다.
    """
    logger.info("시그널링 서버 시작 중...")
    logger.info(f"환경: {server_config.ENV}, 허용 origin: {', '.join(server_config.ALLOWED_ORIGINS)}")

    deleted_logs = cleanup_old_logs()
    if deleted_logs > 0:
        logger.info(f"오래된 로그 파일 {deleted_logs}개 정리 완료 ({server_config.LOG_RETENTION_DAYS}일 이상)")

    yield

    logger.info("서버 종료 중...")
    await close_all_sessions()


app = FastAPI(title="Walkie-Talkie Signaling Server", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(server_config.ALLOWED_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# 라우터 등록
app.include_router(health_router)
app.include_router(signaling_router)

# 시그널링 라우터에 레지스트리/브로드캐스터 전달
init_signaling_managers(registry, broadcaster)


def main():
    import uvicorn
    uvicorn.run(app, host=server_config.HOST, port=server_config.PORT, log_level="info")


if __name__ == "__main__":
    main()
