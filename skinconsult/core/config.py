from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    OPENAI_API_KEY: str | None = None

    OPENAI_MODEL_REPLY: str = "gpt-4o-mini"

    OPENAI_TEMPERATURE_REPLY: float = 0.7
    OPENAI_TEMPERATURE_REPAIR: float = 0.2
    OPENAI_MAX_OUTPUT_TOKENS: int = 2048
    OPENAI_TIMEOUT_SECONDS: float = 30.0

    LLM_MAX_ATTEMPTS: int = 4
    LLM_TURN_TIMEOUT_SECONDS: float = 60.0
    SKIN_PHOTO_ANALYSIS_RETRIES: int = 1
    MAX_REPAIR_PASSES: int = 1

    ASSISTANT_NAME: str = "Bella"
    BRAND_NAME: str = "Beautycology"
    PRODUCT_DOMAIN: str = "https://beautycology.it/"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    PRODUCT_CATALOG_PATH: str = "data/products.json"
    KNOWLEDGE_BASE_DIR: str = "data/knowledge-base"
    RAG_RESULT_COUNT: int = 3
    IMAGE_MAX_DIMENSION: int = 1024

    SESSION_TTL_SECONDS: int = 6 * 3600
    MAX_SESSIONS: int = 5000
    CONVERSATION_DATA_DIR: str = "./data/sessions"

    CRM_WEBHOOK_URL: str | None = None
    CRM_WEBHOOK_TOKEN: str | None = None


settings = Settings()
