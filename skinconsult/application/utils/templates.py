from __future__ import annotations

from skinconsult.application.ports.product_catalog import ProductCatalogPort
from skinconsult.application.utils.routine_steps import (
    EVENING_STEPS,
    MORNING_STEPS,
    STEP_LABELS,
    TREAT,
    is_evening_only,
    routine_step_of,
)
from skinconsult.domain.entities.dialogue import DialogueStep
from skinconsult.domain.entities.product import ProductRecord, RecommendationBundle
from skinconsult.domain.entities.session import Answers

CLOSING_SENTENCE = "Se hai altri dubbi o domande, chiedi pure! 😊"

SKIN_ISSUE_ACKNOWLEDGEMENT = (
    "Grazie per avermi raccontato della tua pelle! "
    "Per consigliarti al meglio ti farò qualche domanda veloce."
)

KIT_HEADER = "💫 **KIT CONSIGLIATO PER TE:**"

CANNED_CONTINUATION = {
    DialogueStep.greeting: (
        "Raccontami qualcosa della tua pelle: che tipo di pelle hai e quale problematica vorresti risolvere? "
        "Puoi anche inviarmi una foto del viso per un'analisi."
    ),
    DialogueStep.completed: (
        "Sono qui per aiutarti: se vuoi approfondire un prodotto della tua routine "
        "o hai dubbi su come utilizzarlo, scrivimi pure."
    ),
}

PROBLEM_LABELS = {
    "rossori": "Rossori",
    "acne": "Acne",
    "rughe": "Rughe",
    "pigmentazione": "Pigmentazione",
    "pori_dilatati": "Pori dilatati",
    "oleosita": "Oleosità",
    "danni_solari": "Danni solari",
    "occhiaie": "Occhiaie",
    "idratazione": "Idratazione",
    "elasticita": "Elasticità",
    "texture_uniforme": "Texture uniforme",
}


def welcome_message(assistant_name: str, brand_name: str, user_name: str) -> str:
    greeting = f"Ciao {user_name}! " if user_name else "Ciao! "
    return (
        f"{greeting}Sono {assistant_name}, la skin expert di {brand_name}. ✨\n\n"
        "Posso aiutarti a costruire la routine giusta per la tua pelle o darti informazioni sui nostri prodotti. "
        "Raccontami com'è la tua pelle e cosa vorresti migliorare, oppure inviami una foto del viso."
    )


def photo_acknowledgement(concerns: list[tuple[str, int]], scores: dict[str, int]) -> str:
    lines = ["Ho analizzato la foto della tua pelle. 🔍"]
    if scores:
        lines.append("")
        for key, value in scores.items():
            lines.append(f"- {PROBLEM_LABELS.get(key, key)}: {value}/100")
    if concerns:
        labels = ", ".join(dict.fromkeys(issue for issue, _ in concerns))
        lines.append("")
        lines.append(f"Gli aspetti su cui lavorare di più sono: {labels}.")
    else:
        lines.append("")
        lines.append("Non ho rilevato criticità importanti.")
    lines.append("Per completare il quadro ti farò qualche domanda veloce.")
    return "\n".join(lines)


def canned_continuation(step: DialogueStep) -> str:
    return CANNED_CONTINUATION.get(step, CANNED_CONTINUATION[DialogueStep.completed])


def product_link(product: ProductRecord) -> str:
    return f"**[{product.name}]({product.url})**"


def product_card(product: ProductRecord) -> str:
    price = f" - {product.price}" if product.price else ""
    return f"{product_link(product)}{price}\n{product.description}".rstrip()


def no_product_found(shop_url: str) -> str:
    return (
        "Mi dispiace, non ho trovato un prodotto che corrisponda alla tua richiesta. "
        f"Puoi dare un'occhiata a tutto il catalogo qui: {shop_url}"
    )


def kit_section(bundle: RecommendationBundle, generic: bool = False) -> str:
    blurb = "Scopri tutte le nostre routine complete" if generic else (
        "Kit completo formulato specificamente per le tue esigenze"
    )
    return f"{KIT_HEADER}\n**[{bundle.name}]({bundle.url})** - {blurb}"


def ensure_closing(text: str) -> str:
    body = text.rstrip()
    if body.endswith(CLOSING_SENTENCE):
        return body
    if not body:
        return CLOSING_SENTENCE
    return f"{body}\n\n{CLOSING_SENTENCE}"


def inject_routine_kit(text: str, bundle: RecommendationBundle, generic: bool = False) -> str:
    """Insert the kit section unless the kit URL is already in the text. Keeps the closing sentence last."""
    if bundle.url in text:
        return text
    body = text.rstrip()
    closing = ""
    if body.endswith(CLOSING_SENTENCE):
        body = body[: -len(CLOSING_SENTENCE)].rstrip()
        closing = CLOSING_SENTENCE
    parts = [p for p in (body, kit_section(bundle, generic=generic), closing) if p]
    return "\n\n".join(parts)


def _ranked_products(catalog: ProductCatalogPort, answers: Answers) -> list[ProductRecord]:
    problems = [p for p in (answers.main_issue, *answers.skin_problems) if p]
    if answers.skin_type and answers.skin_type.lower() in ("secca", "asfittica"):
        problems.append("secchezza")
    ranked = [s.product for s in catalog.score_by_problem(problems, answers.skin_type)]
    seen = {p.name for p in ranked}
    return ranked + [p for p in catalog.all_products() if p.name not in seen]


def _pick(candidates: list[ProductRecord], step: str, morning: bool, avoid: set[str]) -> ProductRecord | None:
    fallback = None
    for product in candidates:
        if routine_step_of(product) != step:
            continue
        if morning and is_evening_only(product):
            continue
        if product.name in avoid:
            fallback = fallback or product
            continue
        return product
    return fallback


def routine_fallback(
    catalog: ProductCatalogPort,
    answers: Answers,
    bundle: RecommendationBundle | None,
    shop_url: str,
    generic_bundle: bool = False,
) -> str:
    """Routine built only from catalog records, each with its canonical link."""
    candidates = _ranked_products(catalog, answers)
    morning = {step: _pick(candidates, step, True, set()) for step in MORNING_STEPS}
    morning_treat = morning.get(TREAT)
    avoid = {morning_treat.name} if morning_treat else set()
    evening = {step: _pick(candidates, step, False, avoid if step == TREAT else set()) for step in EVENING_STEPS}

    if not any(morning.values()) and not any(evening.values()):
        text = no_product_found(shop_url)
    else:
        intro = "Ecco la routine che ho preparato per te"
        details = [v for v in (answers.skin_type and f"pelle {answers.skin_type.lower()}", answers.main_issue) if v]
        if details:
            intro += f" ({', '.join(details)})"
        lines = [f"{intro}! ✨", "", "🌅 **ROUTINE MATTINA:**"]
        lines += _routine_lines(morning)
        lines += ["", "🌙 **ROUTINE SERA:**"]
        lines += _routine_lines(evening)
        text = "\n".join(lines)

    if bundle is not None:
        text = f"{text}\n\n{kit_section(bundle, generic=generic_bundle)}"
    return ensure_closing(text)


def _routine_lines(picks: dict[str, ProductRecord | None]) -> list[str]:
    lines = []
    number = 1
    for step, product in picks.items():
        if product is None:
            continue
        lines.append(f"{number}. {STEP_LABELS[step]}: {product_link(product)}")
        number += 1
    return lines


def single_product_fallback(
    catalog: ProductCatalogPort,
    answers: Answers,
    shop_url: str,
    limit: int = 2,
) -> str:
    products = catalog.find_by_category_or_keyword(answers.advice_type or "")
    if products:
        order = {p.name: i for i, p in enumerate(_ranked_products(catalog, answers))}
        products = sorted(products, key=lambda p: order.get(p.name, len(order)))[:limit]
        cards = "\n\n".join(product_card(p) for p in products)
        text = f"Per le tue esigenze ti consiglio:\n\n{cards}"
    else:
        text = no_product_found(shop_url)
    return ensure_closing(text)
