from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class BotReply:
    text: str
    choices: tuple[str, ...] = ()
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def has_choices(self) -> bool:
        return bool(self.choices)
