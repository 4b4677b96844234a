"""
Central configuration module for Content Studio
Reads and validates environment variables with strict checks for production
"""
import os
import sys
from typing import Optional, List

# Load environment variables from .env file if it exists (dev only)
try:
    from dotenv import load_dotenv
    if os.getenv("ENV", "dev").lower() == "dev":
        load_dotenv()
except ImportError:
    pass


class Config:
    """Central configuration class with environment variable validation"""

    # Environment
    ENV: str = os.getenv("ENV", "dev").lower()

    # Required for all environments
    SECRET_KEY: str = os.getenv("SECRET_KEY", "")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    APP_URL: str = os.getenv("APP_URL", "http://localhost:3000")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Database pool
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "900"))
    DB_POOL_TIMEOUT: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))

    # CORS
    CORS_ORIGINS: List[str] = []

    # LLM provider
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))
    LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "2000"))
    LLM_TIMEOUT: int = int(os.getenv("LLM_TIMEOUT", "120"))
    IMAGE_MODEL: str = os.getenv("IMAGE_MODEL", "dall-e-2")

    # Payment providers - Stripe
    STRIPE_SECRET_KEY: Optional[str] = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: Optional[str] = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRICE_ID_PRO: Optional[str] = os.getenv("STRIPE_PRICE_ID_PRO")
    STRIPE_PRICE_ID_BUSINESS: Optional[str] = os.getenv("STRIPE_PRICE_ID_BUSINESS")

    # Payment providers - Paddle
    PADDLE_API_KEY: Optional[str] = os.getenv("PADDLE_API_KEY")
    PADDLE_ENVIRONMENT: str = os.getenv("PADDLE_ENVIRONMENT", "sandbox").lower()
    PADDLE_WEBHOOK_SECRET: Optional[str] = os.getenv("PADDLE_WEBHOOK_SECRET")
    PADDLE_PRICE_ID_PRO: Optional[str] = os.getenv("PADDLE_PRICE_ID_PRO")
    PADDLE_PRICE_ID_BUSINESS: Optional[str] = os.getenv("PADDLE_PRICE_ID_BUSINESS")
    PADDLE_PRODUCT_ID_PRO: Optional[str] = os.getenv("PADDLE_PRODUCT_ID_PRO")
    PADDLE_PRODUCT_ID_BUSINESS: Optional[str] = os.getenv("PADDLE_PRODUCT_ID_BUSINESS")

    # Payment providers - Fatora
    FATORA_API_KEY: Optional[str] = os.getenv("FATORA_API_KEY")
    FATORA_API_URL: str = os.getenv("FATORA_API_URL", "https://api.fatora.io/v1")
    FATORA_WEBHOOK_SECRET: Optional[str] = os.getenv("FATORA_WEBHOOK_SECRET")

    # Build version (set during build/deploy)
    BUILD_VERSION: str = os.getenv("BUILD_VERSION", "dev")
    BUILD_COMMIT: str = os.getenv("BUILD_COMMIT", "unknown")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def __init__(self):
        """Initialize configuration and validate required variables"""
        self._load_cors_origins()
        self._validate()

    def _load_cors_origins(self):
        """Load CORS origins from environment variable"""
        default_origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

        cors_env = os.getenv("CORS_ORIGINS", "")
        if cors_env:
            env_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
            self.CORS_ORIGINS = default_origins + env_origins
        else:
            self.CORS_ORIGINS = default_origins

    def _validate(self):
        """Validate required configuration based on environment"""
        errors = []

        if self.ENV not in ["dev", "test", "staging", "prod"]:
            errors.append(f"Invalid ENV value: {self.ENV}. Must be 'dev', 'test', 'staging', or 'prod'")

        if not self.SECRET_KEY:
            errors.append("SECRET_KEY is required but not set")
        elif len(self.SECRET_KEY) < 32:
            errors.append(f"SECRET_KEY must be at least 32 characters (current: {len(self.SECRET_KEY)})")

        # PostgreSQL everywhere except local development and tests
        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required but not set")
        elif not self.DATABASE_URL.startswith("postgresql"):
            if not (self.DATABASE_URL.startswith("sqlite") and self.ENV in ["dev", "test"]):
                errors.append(f"DATABASE_URL must be a PostgreSQL connection string (got: {self.DATABASE_URL[:30]}...)")

        if not self.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY is not set - content generation will fail")

        if self.PADDLE_ENVIRONMENT not in ["sandbox", "production"]:
            errors.append(f"PADDLE_ENVIRONMENT must be 'sandbox' or 'production' (got: {self.PADDLE_ENVIRONMENT})")

        # Webhook secrets required for every configured provider in staging/prod
        if self.ENV in ["staging", "prod"]:
            if self.STRIPE_SECRET_KEY and not self.STRIPE_WEBHOOK_SECRET:
                errors.append(f"STRIPE_WEBHOOK_SECRET is required when Stripe is configured in {self.ENV}")
            if self.PADDLE_API_KEY and not self.PADDLE_WEBHOOK_SECRET:
                errors.append(f"PADDLE_WEBHOOK_SECRET is required when Paddle is configured in {self.ENV}")
            if self.FATORA_API_KEY and not self.FATORA_WEBHOOK_SECRET:
                errors.append(f"FATORA_WEBHOOK_SECRET is required when Fatora is configured in {self.ENV}")
            if not self.APP_URL.startswith("https://"):
                errors.append("APP_URL must use HTTPS in staging/production")

        if errors and self.ENV in ["staging", "prod"]:
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION VALIDATION FAILED", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  ❌ {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            sys.exit(1)

        if errors and self.ENV == "dev":
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION WARNINGS (dev mode - continuing)", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  ⚠️  {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode"""
        return self.ENV == "dev"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode"""
        return self.ENV == "prod"

    @property
    def paddle_api_url(self) -> str:
        """Paddle Billing API base URL for the configured environment"""
        if self.PADDLE_ENVIRONMENT == "production":
            return "https://api.paddle.com"
        return "https://sandbox-api.paddle.com"


# Create global config instance
config = Config()
