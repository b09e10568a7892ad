"""
Central configuration. All API keys and settings in one place.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Environment ---
    env: str = Field(default="development", alias="ENV")
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    debug: bool = Field(default=False, alias="DEBUG")

    # --- Database ---
    database_url: str = Field(
        default="sqlite+aiosqlite:///./fashion_buddy.db",
        alias="DATABASE_URL",
    )

    # --- LLM / Vision ---
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    vision_model: str = Field(default="gemini-2.5-flash", alias="VISION_MODEL")
    vision_timeout_seconds: float = Field(default=30.0, alias="VISION_TIMEOUT_SECONDS")

    # --- Virtual try-on ---
    tryon_model: str = Field(default="gemini-2.5-flash-image", alias="TRYON_MODEL")
    tryon_max_attempts: int = Field(default=3, alias="TRYON_MAX_ATTEMPTS")
    tryon_timeout_seconds: float = Field(default=180.0, alias="TRYON_TIMEOUT_SECONDS")

    # --- Product search (SerpAPI Google Shopping) ---
    serp_api_key: str = Field(default="", alias="SERP_API_KEY")
    serp_api_url: str = Field(default="https://serpapi.com/search.json", alias="SERP_API_URL")
    serp_country: str = Field(default="in", alias="SERP_COUNTRY")
    product_result_limit: int = Field(default=5, alias="PRODUCT_RESULT_LIMIT")

    # --- Twilio (WhatsApp) ---
    twilio_account_sid: str = Field(default="", alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(default="", alias="TWILIO_AUTH_TOKEN")
    twilio_phone_number: str = Field(default="", alias="TWILIO_PHONE_NUMBER")
    twilio_api_base: str = Field(default="https://api.twilio.com/2010-04-01", alias="TWILIO_API_BASE")
    message_chunk_size: int = Field(default=1500, alias="MESSAGE_CHUNK_SIZE")

    # --- Subscription tiers ---
    free_color_analysis_limit: int = Field(default=1, alias="FREE_COLOR_ANALYSIS_LIMIT")
    free_virtual_tryon_limit: int = Field(default=1, alias="FREE_VIRTUAL_TRYON_LIMIT")
    auto_register_users: bool = Field(default=True, alias="AUTO_REGISTER_USERS")

    # --- AWS S3 ---
    aws_access_key_id: str = Field(default="", alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field(default="", alias="AWS_SECRET_ACCESS_KEY")
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    s3_bucket_name: str = Field(default="fashion-buddy-media", alias="S3_BUCKET_NAME")
    local_storage_path: str = Field(default="./local_storage", alias="LOCAL_STORAGE_PATH")
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")

    # --- Redis ---
    redis_url: str = Field(default="", alias="REDIS_URL")

    # --- API ---
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
