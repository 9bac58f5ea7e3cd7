import os

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8090"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "info")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    ALLOWED_ORIGINS: str = os.getenv(
        "ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8090"
    )

    # Table service
    TEABLE_API_URL: str = os.getenv("TEABLE_API_URL", "")
    BACKEND_TIMEOUT_SECONDS: float = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "20"))
    LIST_PAGE_SIZE: int = int(os.getenv("LIST_PAGE_SIZE", "1000"))
    LIST_MAX_PAGES: int = int(os.getenv("LIST_MAX_PAGES", "50"))
    BACKEND_TIME_ZONE: str = os.getenv("BACKEND_TIME_ZONE", "UTC")

    # Tenants
    TENANT_CONFIG_DIR: str = os.getenv("TENANT_CONFIG_DIR", "config/tenants")
    DEFAULT_TENANT_ID: str = os.getenv("DEFAULT_TENANT_ID", "default")

    # Rate limiting (fixed window per client address)
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "300"))
    RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    RATE_LIMIT_SWEEP_SECONDS: float = float(os.getenv("RATE_LIMIT_SWEEP_SECONDS", "300"))

    # Bulk operations
    REQUEST_QUEUE_CONCURRENCY: int = int(os.getenv("REQUEST_QUEUE_CONCURRENCY", "5"))

    # Access control
    PUBLIC_ROUTES: str = os.getenv("PUBLIC_ROUTES", "/sign-in,/sign-up,/api,/health")
    REQUIRE_API_SESSION: bool = os.getenv("REQUIRE_API_SESSION", "false").lower() == "true"
    ON_MEMBERSHIP_CHECK_ERROR: str = os.getenv("ON_MEMBERSHIP_CHECK_ERROR", "allow")

    # Identity provider (Clerk)
    CLERK_API_URL: str = os.getenv("CLERK_API_URL", "https://api.clerk.com/v1")
    CLERK_SECRET_KEY: str = os.getenv("CLERK_SECRET_KEY", "")
    CLERK_JWT_KEY: str = os.getenv("CLERK_JWT_KEY", "")
    CLERK_JWT_ALGORITHM: str = os.getenv("CLERK_JWT_ALGORITHM", "RS256")

    def public_route_prefixes(self) -> list[str]:
        return [p.strip() for p in self.PUBLIC_ROUTES.split(",") if p.strip()]

    def model_post_init(self, __context) -> None:
        """Validate policy settings after initialization"""
        if self.ON_MEMBERSHIP_CHECK_ERROR not in ("allow", "deny"):
            raise ValueError("ON_MEMBERSHIP_CHECK_ERROR must be 'allow' or 'deny'")

        if self.LIST_MAX_PAGES < 1:
            raise ValueError("LIST_MAX_PAGES must be at least 1")


settings = Settings()
