"""무전기 클라이언트.

시그널링 서버에 WebSocket으로 접속하여 룸에 입장하고, 표준 입력으로
말하기(push-to-talk)를 토글하는 명령줄 클라이언트입니다.

사용법:
    walkie-client --room lobby --name 철수
    (입력: t = 말하기 토글, q = 퇴장 후 종료)
"""
import argparse
import asyncio
import json
import logging
import random
import string
import sys
import threading
from typing import Any, Dict, Optional

import websockets

from ..signaling import messages
from .config import signaling_config
from .supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)


def generate_user_id() -> str:
    """``user-`` 접두사에 9자리 base36 문자열을 붙인 참가자 ID를 만듭니다."""
    alphabet = string.ascii_lowercase + string.digits
    return "user-" + "".join(random.choices(alphabet, k=9))


class SignalingClient:
    """시그널링 서버와의 WebSocket 연결.

    Attributes:
        url (str): 시그널링 서버 WebSocket URL
        websocket: 연결 객체 (접속 전에는 None)
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or signaling_config.BACKEND_URL
        self.websocket = None
        self._closing = False

    async def connect(self) -> None:
        self.websocket = await websockets.connect(self.url)
        logger.info(f"[Client] 시그널링 서버 연결: {self.url}")

    async def send(self, event: str, data: Dict[str, Any]) -> bool:
        """envelope을 전송합니다. 연결이 없거나 끊겼으면 False."""
        if self.websocket is None:
            logger.warning(f"[Client] 연결 없음, {event} 전송 불가")
            return False
        try:
            await self.websocket.send(json.dumps(messages.envelope(event, data)))
            return True
        except websockets.exceptions.ConnectionClosed:
            logger.warning(f"[Client] 연결 끊김, {event} 전송 실패")
            return False

    async def listen(self, supervisor: ConnectionSupervisor) -> None:
        """서버 메시지를 순서대로 supervisor에 전달합니다.

        연결이 예기치 않게 끊기면 supervisor.on_transport_lost()를 호출합니다.
        """
        try:
            async for raw in self.websocket:
                try:
                    event, data = messages.parse_envelope(json.loads(raw))
                except ValueError:
                    logger.warning("[Client] JSON 파싱 실패, 메시지 무시")
                    continue
                await supervisor.handle_message(event, data)
        except websockets.exceptions.ConnectionClosed:
            logger.info("[Client] 서버가 연결을 종료함")
        finally:
            if not self._closing:
                await supervisor.on_transport_lost()

    async def close(self) -> None:
        self._closing = True
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None


def start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> threading.Thread:
    """표준 입력을 daemon 스레드에서 읽어 큐에 넣습니다. EOF는 빈 문자열로 전달됩니다."""
    def read():
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, "")
        except RuntimeError:
            # 이벤트 루프가 이미 닫힘
            return

    thread = threading.Thread(target=read, daemon=True)
    thread.start()
    return thread


async def command_loop(supervisor: ConnectionSupervisor, lines: asyncio.Queue, listener: asyncio.Future) -> None:
    """입력 명령을 처리합니다. q, EOF, 또는 서버 연결 종료(listener 완료) 시 반환합니다."""
    talking = False
    while not listener.done():
        next_line = asyncio.ensure_future(lines.get())
        done, _ = await asyncio.wait({next_line, listener}, return_when=asyncio.FIRST_COMPLETED)
        if next_line not in done:
            next_line.cancel()
            logger.info("[Client] 서버 연결 종료, 입력 대기 중단")
            return

        line = next_line.result()
        command = line.strip().lower()
        if not line or command == "q":
            return
        if command == "t":
            talking = not talking
            await supervisor.set_talking(talking)
            print("Talking..." if talking else "Press t to talk")


async def run_client(url: str, room: str, name: Optional[str]) -> None:
    client = SignalingClient(url)
    await client.connect()

    def show_talking(user_id: str, is_talking: bool):
        print(f"  {user_id} {'is talking...' if is_talking else 'stopped talking'}")

    supervisor = ConnectionSupervisor(
        generate_user_id(),
        client,
        on_error=lambda message: print(f"! {message}"),
        on_talking=show_talking,
    )
    listener = asyncio.create_task(client.listen(supervisor))

    if not await supervisor.join(room, name):
        await client.close()
        await listener
        return

    print(f"Joined room: {room} as {supervisor.username} ({supervisor.local_id})")
    print("Commands: t = toggle talk, q = leave")

    lines: asyncio.Queue = asyncio.Queue()
    start_stdin_reader(asyncio.get_running_loop(), lines)
    try:
        await command_loop(supervisor, lines, listener)
    finally:
        await supervisor.leave()
        await client.close()
        await listener


def main() -> None:
    """명령줄 진입점."""
    parser = argparse.ArgumentParser(description="Push-to-talk walkie-talkie client")
    parser.add_argument("--room", required=True, help="Room name to join")
    parser.add_argument("--name", default=None, help="Display name (default: Anonymous)")
    parser.add_argument(
        "--url",
        default=signaling_config.BACKEND_URL,
        help=f"Signaling server WebSocket URL (default: {signaling_config.BACKEND_URL})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        asyncio.run(run_client(args.url, args.room, args.name))
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
