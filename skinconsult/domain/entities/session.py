from dataclasses import dataclass

from skinconsult.domain.entities.dialogue import DialogueStep, QUESTION_STEPS


@dataclass(frozen=True)
class InlineImage:
    mime_type: str
    base64: str


@dataclass(frozen=True)
class ChatTurn:
    speaker: str  # "user" | "model"
    text: str
    image: InlineImage | None = None


@dataclass(frozen=True)
class Answers:
    skin_type: str | None = None
    age: str | None = None
    main_issue: str | None = None
    advice_type: str | None = None
    additional_info: str | None = None
    skin_problems: tuple[str, ...] = ()

    def get(self, slot: str) -> str | None:
        return getattr(self, slot)


@dataclass(frozen=True)
class SessionState:
    session_id: str
    user_name: str
    current_step: DialogueStep = DialogueStep.greeting
    structured_flow_active: bool = False
    has_introduced: bool = False
    last_intent: str | None = None
    answers: Answers = Answers()
    final_recommendation_sent: bool = False
    history: tuple[ChatTurn, ...] = ()
    created_at: float | None = None
    last_seen_at: float | None = None

    @property
    def is_questioning(self) -> bool:
        return self.structured_flow_active and self.current_step in QUESTION_STEPS
