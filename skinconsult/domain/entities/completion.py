from dataclasses import dataclass

from skinconsult.domain.entities.session import ChatTurn


@dataclass(frozen=True)
class CompletionRequest:
    turns: tuple[ChatTurn, ...]
    system_instruction: str
    temperature: float = 0.7
    max_output_tokens: int = 2048
    # time.monotonic() value after which the adapter must stop calling the provider
    deadline: float | None = None
