from __future__ import annotations

from dataclasses import dataclass

from skinconsult.domain.entities.product import RecommendationBundle

SHOP_DOMAIN = "https://beautycology.it/"

GENERIC_ROUTINE_BUNDLE = RecommendationBundle(
    name="Collezione Routine Complete",
    url=f"{SHOP_DOMAIN}skincare-routine/",
)

AGING_MARKERS = ("rugh", "invecchiament", "anti-age", "prime rughe")


@dataclass(frozen=True)
class RoutineRule:
    issue_markers: tuple[str, ...]
    skin_markers: tuple[str, ...]
    bundle: RecommendationBundle

    def matches(self, skin_type: str, main_issue: str) -> bool:
        if self.issue_markers and not any(m in main_issue for m in self.issue_markers):
            return False
        if self.skin_markers and not any(m in skin_type for m in self.skin_markers):
            return False
        return True


def _kit(name: str, slug: str) -> RecommendationBundle:
    return RecommendationBundle(name=name, url=f"{SHOP_DOMAIN}prodotto/{slug}/")


# Evaluated top to bottom; first match wins.
ROUTINE_RULES: tuple[RoutineRule, ...] = (
    RoutineRule(("rosacea",), (), _kit("Routine Pelle Soggetta a Rosacea", "routine-pelle-soggetta-rosacea")),
    RoutineRule(("macchi", "discrom", "pigment"), (), _kit("Routine Anti-Macchie", "routine-anti-macchie")),
    RoutineRule(("acne", "brufol", "tardiva"), (), _kit("Routine Pelle Acne Tardiva", "routine-pelle-acne-tardiva")),
    RoutineRule(
        ("sensibil", "reattiv", "atopic"),
        (),
        _kit("Routine Pelle Iper-reattiva Tendenza Atopica", "routine-pelle-iper-reattiva-tendenza-atopica"),
    ),
    RoutineRule(AGING_MARKERS, ("mist",), _kit("Routine Prime Rughe", "routine-prime-rughe")),
    RoutineRule(AGING_MARKERS, ("secc",), _kit("Routine Antirughe", "routine-antirughe")),
    RoutineRule((), ("mist",), _kit("Routine Pelle Mista", "routine-pelle-mista")),
    RoutineRule((), ("grass",), _kit("Routine Pelle Grassa", "routine-pelle-grassa")),
    RoutineRule((), ("secc",), _kit("Routine Pelle Secca", "routine-pelle-secca")),
)


def resolve_routine_kit(skin_type: str | None, main_issue: str | None) -> RecommendationBundle | None:
    """Map (skin type, main issue) to a routine kit. Returns None when no rule applies."""
    skin = (skin_type or "").lower()
    issue = (main_issue or "").lower()
    for rule in ROUTINE_RULES:
        if rule.matches(skin, issue):
            return rule.bundle
    return None


def resolve_routine_kit_or_generic(skin_type: str | None, main_issue: str | None) -> RecommendationBundle:
    return resolve_routine_kit(skin_type, main_issue) or GENERIC_ROUTINE_BUNDLE
