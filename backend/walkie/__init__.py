"""Walkie-talkie backend package.

룸 기반 푸시투토크 음성 통화를 위한 시그널링 서버와 피어 클라이언트 모듈입니다.
오디오는 피어 간에 직접 흐르며, 서버는 협상 메타데이터만 중계합니다.

Modules:
    signaling: 룸 멤버십 관리 및 시그널링 메시지 중계 (서버)
    webrtc: 피어 협상 상태 머신 및 연결 관리 (클라이언트)
"""
