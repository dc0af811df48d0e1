from functools import lru_cache
import logging

from skinconsult.core.config import settings
from skinconsult.application.ports.conversation_store import ConversationStorePort
from skinconsult.application.ports.llm import TextCompletionPort
from skinconsult.application.ports.product_catalog import ProductCatalogPort
from skinconsult.application.ports.session_store import SessionStorePort
from skinconsult.application.ports.snapshot_exporter import SnapshotExporterPort
from skinconsult.application.use_cases.analyze_skin_photo import SkinPhotoAnalysisUseCase
from skinconsult.application.use_cases.end_session import EndSessionUseCase
from skinconsult.application.use_cases.handle_chat_turn import HandleChatTurnUseCase
from skinconsult.application.use_cases.product_info import ProductInfoUseCase
from skinconsult.application.use_cases.repair_response import ResponseRepairUseCase
from skinconsult.application.use_cases.validate_response import ResponseValidator
from skinconsult.infrastructure.export.snapshot_exporters import HttpSnapshotExporter, LoggingSnapshotExporter
from skinconsult.infrastructure.imaging.pillow_preprocessor import PillowImagePreprocessor
from skinconsult.infrastructure.knowledge.product_catalog import ProductCatalog
from skinconsult.infrastructure.llm.mock_llm import MockLLM
from skinconsult.infrastructure.llm.openai_llm import OpenAILLM
from skinconsult.infrastructure.retrieval.keyword_retriever import KeywordRetriever
from skinconsult.infrastructure.store.json_store import JsonConversationStore
from skinconsult.infrastructure.store.memory_session_store import MemorySessionStore
from skinconsult.infrastructure.store.memory_store import MemoryConversationStore

logger = logging.getLogger(__name__)


@lru_cache
def get_llm() -> TextCompletionPort:
    if settings.OPENAI_API_KEY and settings.OPENAI_API_KEY.strip():
        return OpenAILLM(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL_REPLY,
            timeout_seconds=settings.OPENAI_TIMEOUT_SECONDS,
            max_attempts=settings.LLM_MAX_ATTEMPTS,
            default_budget_seconds=settings.LLM_TURN_TIMEOUT_SECONDS,
        )
    logger.info("OPENAI_API_KEY missing, using MockLLM")
    return MockLLM()


@lru_cache
def get_product_catalog() -> ProductCatalogPort:
    return ProductCatalog.from_file(settings.PRODUCT_CATALOG_PATH)


@lru_cache
def get_retriever() -> KeywordRetriever:
    return KeywordRetriever.from_directory(settings.KNOWLEDGE_BASE_DIR)


@lru_cache
def get_session_store() -> SessionStorePort:
    return MemorySessionStore(ttl_seconds=settings.SESSION_TTL_SECONDS, max_sessions=settings.MAX_SESSIONS)


@lru_cache
def get_conversation_store() -> ConversationStorePort:
    if settings.ENV.lower() in {"dev", "local"}:
        return JsonConversationStore(data_dir=settings.CONVERSATION_DATA_DIR)
    return MemoryConversationStore()


@lru_cache
def get_snapshot_exporter() -> SnapshotExporterPort:
    if settings.CRM_WEBHOOK_URL:
        return HttpSnapshotExporter(webhook_url=settings.CRM_WEBHOOK_URL, token=settings.CRM_WEBHOOK_TOKEN)
    return LoggingSnapshotExporter()


def get_validator() -> ResponseValidator:
    return ResponseValidator(
        catalog=get_product_catalog(),
        approved_domain=settings.PRODUCT_DOMAIN,
        brand_name=settings.BRAND_NAME,
    )


def get_handle_chat_turn_use_case() -> HandleChatTurnUseCase:
    catalog = get_product_catalog()
    validator = get_validator()
    return HandleChatTurnUseCase(
        sessions=get_session_store(),
        conversations=get_conversation_store(),
        llm=get_llm(),
        catalog=catalog,
        retriever=get_retriever(),
        image_processor=PillowImagePreprocessor(max_dimension=settings.IMAGE_MAX_DIMENSION),
        validator=validator,
        repair=ResponseRepairUseCase(
            llm=get_llm(),
            catalog=catalog,
            validator=validator,
            max_repairs=settings.MAX_REPAIR_PASSES,
            temperature=settings.OPENAI_TEMPERATURE_REPAIR,
            max_output_tokens=settings.OPENAI_MAX_OUTPUT_TOKENS,
        ),
        product_info=ProductInfoUseCase(catalog=catalog, shop_url=settings.PRODUCT_DOMAIN),
        skin_photo_analysis=SkinPhotoAnalysisUseCase(
            llm=get_llm(),
            max_retries=settings.SKIN_PHOTO_ANALYSIS_RETRIES,
            temperature=settings.OPENAI_TEMPERATURE_REPAIR,
        ),
        assistant_name=settings.ASSISTANT_NAME,
        brand_name=settings.BRAND_NAME,
        shop_url=settings.PRODUCT_DOMAIN,
        rag_result_count=settings.RAG_RESULT_COUNT,
        temperature=settings.OPENAI_TEMPERATURE_REPLY,
        max_output_tokens=settings.OPENAI_MAX_OUTPUT_TOKENS,
        turn_timeout_seconds=settings.LLM_TURN_TIMEOUT_SECONDS,
    )


def get_end_session_use_case() -> EndSessionUseCase:
    return EndSessionUseCase(
        sessions=get_session_store(),
        conversations=get_conversation_store(),
        exporter=get_snapshot_exporter(),
    )
