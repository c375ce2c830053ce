"""룸 멤버십 레지스트리 모듈.

시그널링 서버 프로세스 전체에서 공유되는 룸 → 참가자 집합 매핑을 관리합니다.
영속화하지 않으며 프로세스가 살아있는 동안 메모리에만 존재합니다.

주요 기능:
    - 참가자 입장 (룸 자동 생성, 중복 입장은 멱등)
    - 참가자 퇴장 (마지막 참가자 퇴장 시 룸 자동 삭제)
    - 룸 멤버 스냅샷 조회

Invariant:
    룸의 멤버 집합이 비어있는 것과 레지스트리에 룸 항목이 없는 것은 동치입니다.
    빈 룸 항목은 절대 남지 않습니다.

Thread Safety:
    모든 연산은 단일 ``threading.Lock`` 아래에서 동기적으로 수행됩니다.
    어떤 연산도 I/O를 하지 않으므로 asyncio 콜백에서 호출해도 블로킹되지 않습니다.

Examples:
    >>> registry = RoomRegistry()
    >>> registry.join("lobby", "p1")
    {'p1'}
    >>> registry.join("lobby", "p2")
    {'p1', 'p2'}
    >>> registry.leave("lobby", "p1")
    >>> registry.members_of("lobby")
    {'p2'}
"""
import logging
import threading
from typing import Dict, List, Set

logger = logging.getLogger(__name__)


class RoomRegistry:
    """룸 식별자 → 참가자 식별자 집합을 관리하는 클래스.

    룸과 참가자 식별자는 외부에서 주어지는 불투명 문자열이며 형식을 검증하지 않습니다.

    Attributes:
        rooms (Dict[str, Set[str]]): 룸 이름 → 참가자 ID 집합
    """

    def __init__(self):
        # room -> {participant_id}
        self.rooms: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def join(self, room: str, participant: str) -> Set[str]:
        """참가자를 룸에 추가하고 추가 후의 전체 멤버 스냅샷을 반환합니다.

        룸이 없으면 생성합니다. 이미 멤버인 참가자를 다시 추가해도 상태는 변하지 않습니다.

        Args:
            room: 룸 식별자
            participant: 참가자 식별자

        Returns:
            Set[str]: 입장한 참가자 본인을 포함한 멤버 집합 복사본
        """
        with self._lock:
            members = self.rooms.get(room)
            if members is None:
                members = self.rooms[room] = set()
                logger.info(f"[Registry] 룸 '{room}' 생성")
            members.add(participant)
            snapshot = set(members)

        logger.info(f"[Registry] {participant} → 룸 '{room}' 입장. 현재 {len(snapshot)}명")
        return snapshot

    def leave(self, room: str, participant: str) -> None:
        """참가자를 룸에서 제거합니다.

        룸이 비게 되면 룸 항목 자체를 삭제합니다.
        룸이나 참가자가 없으면 아무것도 하지 않습니다 (에러 아님).
        """
        with self._lock:
            members = self.rooms.get(room)
            if members is None or participant not in members:
                logger.debug(f"[Registry] leave 무시: room={room}, participant={participant}")
                return
            members.discard(participant)
            remaining = len(members)
            if not members:
                del self.rooms[room]

        if remaining == 0:
            logger.info(f"[Registry] 룸 '{room}' 삭제 (비어있음)")
        else:
            logger.info(f"[Registry] {participant} ← 룸 '{room}' 퇴장. 현재 {remaining}명")

    def members_of(self, room: str) -> Set[str]:
        """룸 멤버 집합의 복사본을 반환합니다. 룸이 없으면 빈 집합."""
        with self._lock:
            return set(self.rooms.get(room, ()))

    def has_room(self, room: str) -> bool:
        with self._lock:
            return room in self.rooms

    def get_room_list(self) -> List[dict]:
        """모든 룸의 스냅샷을 반환합니다.

        Returns:
            List[dict]: ``{"room", "members", "count"}`` 딕셔너리 리스트.
                members는 정렬된 리스트
        """
        with self._lock:
            return [
                {"room": room, "members": sorted(members), "count": len(members)}
                for room, members in self.rooms.items()
            ]
