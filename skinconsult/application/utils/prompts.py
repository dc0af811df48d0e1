from __future__ import annotations

from skinconsult.application.utils.question_table import QuestionSpec
from skinconsult.application.utils.templates import CLOSING_SENTENCE, KIT_HEADER
from skinconsult.domain.entities.product import ProductRecord, RecommendationBundle
from skinconsult.domain.entities.retrieval import RetrievedSnippet
from skinconsult.domain.entities.session import Answers
from skinconsult.domain.entities.validation import ValidationIssue

MAX_CATALOG_LINES = 60


def _catalog_block(products: list[ProductRecord]) -> str:
    if not products:
        return "Catalogo non disponibile: non citare prodotti specifici."
    lines = [
        f"- {p.name} | {p.category} | {p.price} | {p.url}"
        for p in products[:MAX_CATALOG_LINES]
    ]
    return "\n".join(lines)


def _snippets_block(snippets: list[RetrievedSnippet]) -> str:
    if not snippets:
        return ""
    body = "\n\n".join(f"[{s.source_label}]\n{s.text}" for s in snippets)
    return f"\n\nINFORMAZIONI DALLA KNOWLEDGE BASE:\n{body}"


def answers_summary(answers: Answers) -> str:
    rows = (
        ("Tipo di pelle", answers.skin_type),
        ("Età", answers.age),
        ("Problematica principale", answers.main_issue),
        ("Tipo di consiglio", answers.advice_type),
        ("Informazioni aggiuntive", answers.additional_info),
        ("Altre problematiche", ", ".join(answers.skin_problems) if answers.skin_problems else None),
    )
    return "\n".join(f"- {label}: {value}" for label, value in rows if value)


def build_system_instruction(
    assistant_name: str,
    brand_name: str,
    product_domain: str,
    products: list[ProductRecord],
    snippets: list[RetrievedSnippet],
    task: str,
    has_introduced: bool,
) -> str:
    intro_rule = (
        "Ti sei già presentata: non salutare di nuovo e non ripresentarti."
        if has_introduced
        else "Presentati brevemente."
    )
    return (
        f"Sei {assistant_name}, skin expert di {brand_name}. Rispondi in italiano, con tono caldo e professionale.\n"
        f"{intro_rule}\n"
        "REGOLE SUI PRODOTTI:\n"
        "- Cita solo prodotti presenti nel catalogo qui sotto, con il nome esatto.\n"
        "- Ogni prodotto citato deve avere il suo link esatto, nel formato **[Nome](link)**.\n"
        f"- Usa solo link che iniziano con {product_domain}.\n"
        f"- Non inventare nomi generici come '{brand_name} detergente' o '{brand_name} crema'.\n"
        f"\nCATALOGO:\n{_catalog_block(products)}"
        f"{_snippets_block(snippets)}\n\n"
        f"COMPITO:\n{task}"
    )


def build_question_task(spec: QuestionSpec) -> str:
    return (
        "Scrivi una sola frase breve ed empatica sulla situazione dell'utente, poi fai esattamente questa domanda: "
        f"\"{spec.question}\"\n"
        "Non elencare le opzioni di risposta (vengono mostrate come pulsanti). "
        "Non consigliare ancora prodotti e non fare altre domande."
    )


def build_continuation_task() -> str:
    return (
        "Rispondi al messaggio dell'utente in modo utile e sintetico, usando la knowledge base quando pertinente. "
        f"Chiudi con la frase: \"{CLOSING_SENTENCE}\""
    )


def build_routine_task(answers: Answers, bundle: RecommendationBundle, candidates: list[ProductRecord]) -> str:
    names = ", ".join(p.name for p in candidates) or "nessuno"
    return (
        "Crea la routine completa personalizzata per l'utente.\n"
        f"DATI RACCOLTI:\n{answers_summary(answers)}\n\n"
        f"PRODOTTI PIÙ ADATTI (in ordine): {names}\n\n"
        "STRUTTURA OBBLIGATORIA:\n"
        "1. Breve analisi della pelle.\n"
        "2. 🌅 **ROUTINE MATTINA:** detersione, trattamento, idratazione, protezione solare; un prodotto per step.\n"
        "3. 🌙 **ROUTINE SERA:** detersione, trattamento, idratazione; un prodotto per step.\n"
        "4. Consigli d'uso.\n"
        f"5. {KIT_HEADER} **[{bundle.name}]({bundle.url})**\n"
        f"Chiudi con la frase: \"{CLOSING_SENTENCE}\""
    )


def build_single_product_task(answers: Answers, candidates: list[ProductRecord]) -> str:
    names = ", ".join(p.name for p in candidates) or "nessuno"
    return (
        f"L'utente cerca: {answers.advice_type}. Consiglia uno o due prodotti tra questi: {names}.\n"
        f"DATI RACCOLTI:\n{answers_summary(answers)}\n\n"
        "Spiega brevemente perché sono adatti e come usarli. Non proporre una routine completa.\n"
        f"Chiudi con la frase: \"{CLOSING_SENTENCE}\""
    )


def build_repair_prompt(text: str, issues: list[ValidationIssue], products: list[ProductRecord]) -> str:
    problems = "\n".join(f"- {issue.kind.value}: {issue.detail}" for issue in issues)
    return (
        "Il testo seguente contiene errori sui prodotti. Riscrivilo mantenendo struttura e tono, "
        "usando solo nomi esatti e link esatti del catalogo.\n\n"
        f"ERRORI TROVATI:\n{problems}\n\n"
        f"CATALOGO:\n{_catalog_block(products)}\n\n"
        f"TESTO DA CORREGGERE:\n{text}\n\n"
        "Restituisci solo il testo corretto."
    )


SKIN_PHOTO_INSTRUCTION = """Sei un'AI dermocosmetica specializzata nell'analisi fotografica della pelle del viso.

Analizza la foto e restituisci ESCLUSIVAMENTE un oggetto JSON con questi parametri, punteggi interi 0-100:
{"rossori": n, "acne": n, "rughe": n, "pigmentazione": n, "pori_dilatati": n, "oleosita": n,
 "danni_solari": n, "occhiaie": n, "idratazione": n, "elasticita": n, "texture_uniforme": n}

Per rossori, acne, rughe, pigmentazione, pori_dilatati, oleosita, danni_solari e occhiaie:
0-20 assente, 21-40 lieve, 41-60 evidente, 61-80 marcato, 81-100 severo (rossori 81-100: possibile rosacea).
Per idratazione, elasticita e texture_uniforme il punteggio alto è positivo:
0-20 molto scarsa, 21-40 scarsa, 41-60 discreta, 61-80 buona, 81-100 ottima.

Considera illuminazione, angolazione e qualità dell'immagine. Sii preciso ma realistico.
Rispondi SOLO con il JSON, nient'altro."""

SKIN_PHOTO_REQUEST = "Analizza la pelle del viso in questa foto."
