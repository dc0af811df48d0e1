from enum import Enum


class DialogueStep(str, Enum):
    greeting = "greeting"
    awaiting_skin_type = "awaiting_skin_type"
    awaiting_age = "awaiting_age"
    awaiting_problem = "awaiting_problem"
    awaiting_advice_type = "awaiting_advice_type"
    awaiting_additional_info = "awaiting_additional_info"
    completed = "completed"


class Intent(str, Enum):
    product_info = "product_info"
    skin_analysis = "skin_analysis"
    continuation = "continuation"


QUESTION_STEPS = (
    DialogueStep.awaiting_skin_type,
    DialogueStep.awaiting_age,
    DialogueStep.awaiting_problem,
    DialogueStep.awaiting_advice_type,
    DialogueStep.awaiting_additional_info,
)
