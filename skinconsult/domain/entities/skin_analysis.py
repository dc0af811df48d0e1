from dataclasses import dataclass


SKIN_PARAMETERS = (
    "rossori",
    "acne",
    "rughe",
    "pigmentazione",
    "pori_dilatati",
    "oleosita",
    "danni_solari",
    "occhiaie",
    "idratazione",
    "elasticita",
    "texture_uniforme",
)

# High score is good for these; the concern is a low value.
INVERTED_PARAMETERS = frozenset({"idratazione", "elasticita", "texture_uniforme"})


@dataclass(frozen=True)
class SkinAnalysisReport:
    scores: dict[str, int]
    overall_score: int | None = None

    def concern_level(self, parameter: str) -> int:
        if parameter not in self.scores:
            return 0
        value = self.scores[parameter]
        if parameter in INVERTED_PARAMETERS:
            return 100 - value
        return value
