from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Каталог (storefront GraphQL для чтения, admin REST для записи)
    CATALOG_STOREFRONT_URL: str = "https://example.myshopify.com/api/2025-07/graphql.json"
    CATALOG_STOREFRONT_TOKEN: str = ""
    CATALOG_ADMIN_URL: str = "https://example.myshopify.com/admin/api/2025-01"
    CATALOG_ADMIN_TOKEN: str = ""
    CATALOG_ID_PREFIX: str = "gid://shopify/"

    # Кэш и пагинация
    CATALOG_CACHE_TTL: float = 300.0
    CATALOG_BROAD_FETCH_THRESHOLD: int = 40
    CATALOG_DASHBOARD_COUNT: int = 300
    CATALOG_PAGE_SIZE: int = 250

    # Таймауты отдельных запросов
    CATALOG_SINGLE_PAGE_TIMEOUT: float = 15.0
    CATALOG_PAGINATED_TIMEOUT: float = 45.0
    CATALOG_MUTATION_TIMEOUT: float = 20.0
    HTTP_TIMEOUT_CONNECT: float = 5.0
    HTTP_PROXY_URL: str | None = None

    # Сверка и пакетные операции
    CATALOG_POLL_INTERVAL: float = 30.0
    BATCH_CONCURRENCY_LIMIT: int = 5
    TITLE_SEPARATOR: str = " - "

    # Генерация контента (OpenAI-совместимый API)
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    GENERATION_TIMEOUT: float = 60.0
    GENERATION_RETRY_ATTEMPTS: int = 2
    GENERATION_RETRY_BACKOFF: float = 3.0
    GENERATION_RETRY_STATUS_CODES: tuple[int, ...] = (429, 500, 502, 503, 504)
    HTTP_CIRCUIT_BREAKER_MAX_FAILURES: int = 5
    HTTP_CIRCUIT_BREAKER_BASE_DELAY: float = 1.0
    HTTP_CIRCUIT_BREAKER_MAX_DELAY: float = 30.0

    # Хранилище правок
    DB_URL: str = "sqlite+aiosqlite:///./var/catalog.db"
    MIGRATE_ON_START: bool = True

    # Логи
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("CATALOG_STOREFRONT_URL", "CATALOG_ADMIN_URL", "OPENAI_BASE")
    @classmethod
    def _validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator(
        "CATALOG_CACHE_TTL",
        "CATALOG_SINGLE_PAGE_TIMEOUT",
        "CATALOG_PAGINATED_TIMEOUT",
        "CATALOG_MUTATION_TIMEOUT",
        "CATALOG_POLL_INTERVAL",
        "GENERATION_TIMEOUT",
    )
    @classmethod
    def _validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("CATALOG_PAGE_SIZE", "BATCH_CONCURRENCY_LIMIT", "CATALOG_DASHBOARD_COUNT")
    @classmethod
    def _validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("GENERATION_RETRY_ATTEMPTS")
    @classmethod
    def _validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry attempts must be non-negative")
        return v


settings = Settings()
