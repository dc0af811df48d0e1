from __future__ import annotations

from skinconsult.application.utils.text_rules import normalize_text
from skinconsult.domain.entities.product import ProductRecord

CLEANSE = "cleanse"
TREAT = "treat"
MOISTURIZE = "moisturize"
PROTECT = "protect"

MORNING_STEPS = (CLEANSE, TREAT, MOISTURIZE, PROTECT)
EVENING_STEPS = (CLEANSE, TREAT, MOISTURIZE)

STEP_LABELS = {
    CLEANSE: "Detersione",
    TREAT: "Trattamento",
    MOISTURIZE: "Idratazione",
    PROTECT: "Protezione solare",
}

CATEGORY_STEPS: dict[str, str | None] = {
    "detergenti": CLEANSE,
    "sieri": TREAT,
    "trattamenti": TREAT,
    "esfolianti": TREAT,
    "contorno occhi": TREAT,
    "maschere": TREAT,
    "creme": MOISTURIZE,
    "protezione solare": PROTECT,
    "corpo": None,
    "routine": None,
}

EVENING_ONLY_MARKERS = ("solo la sera", "uso serale", "siero notte")


def routine_step_of(product: ProductRecord) -> str | None:
    category = normalize_text(product.category)
    if category in CATEGORY_STEPS:
        return CATEGORY_STEPS[category]
    text = normalize_text(f"{product.name} {product.description}")
    if "spf" in text:
        return PROTECT
    if "detergent" in text:
        return CLEANSE
    if "siero" in text or "serum" in text:
        return TREAT
    if "crema" in text:
        return MOISTURIZE
    return None


def is_evening_only(product: ProductRecord) -> bool:
    text = normalize_text(product.description)
    return any(marker in text for marker in EVENING_ONLY_MARKERS)
