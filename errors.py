"""
errors.py
Validation failures raised by the studio core. All are recoverable: callers
show ``message`` to the user instead of crashing.
"""

from __future__ import annotations


class StudioError(Exception):
    """Base class; ``message`` is safe to show in the UI."""

    default_message = "요청을 처리할 수 없습니다."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthorized(StudioError):
    default_message = "이 강사는 해당 지점에 요율이 설정되어 있지 않습니다."


class InvalidRate(StudioError):
    default_message = "요율 값이 올바르지 않습니다."


class InconsistentState(StudioError):
    default_message = "데이터가 일치하지 않습니다."


class BranchMismatch(StudioError):
    default_message = "연결된 강사 프로필이 해당 지점에 소속되어 있지 않습니다."
