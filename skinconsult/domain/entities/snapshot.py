from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    user_name: str
    email: str
    answers: dict[str, str]
    skin_problems: tuple[str, ...]
    final_recommendation_sent: bool
    message_count: int
    transcript: tuple[dict[str, Any], ...] = ()
    started_at: float | None = None
    ended_at: float | None = None
    meta: dict[str, Any] = field(default_factory=dict)
