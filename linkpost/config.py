import os
from dotenv import load_dotenv

load_dotenv()


class ConfigError(RuntimeError):
    """Required configuration is missing."""


CALLBACK_PATH = "/api/auth/linkedin/callback"

class Settings:
    app_env: str = os.getenv("APP_ENV", "development")
    app_base_url: str = os.getenv("APP_BASE_URL", "").rstrip("/")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./linkpost.db")
    linkedin_client_id: str = os.getenv("LINKEDIN_CLIENT_ID", "")
    linkedin_client_secret: str = os.getenv("LINKEDIN_CLIENT_SECRET", "")
    # Empty means "derive from APP_BASE_URL or the request origin"
    linkedin_redirect_uri: str = os.getenv("LINKEDIN_REDIRECT_URI", "")
    linkedin_scopes: str = os.getenv("LINKEDIN_SCOPES", "openid profile email w_member_social")
    n8n_api_key: str = os.getenv("N8N_API_KEY", "")
    fernet_key: str = os.getenv("FERNET_KEY", "")
    worker_interval_seconds: int = int(os.getenv("WORKER_INTERVAL_SECONDS", "60"))

    REQUIRED = {
        "linkedin_client_id": "LINKEDIN_CLIENT_ID",
        "linkedin_client_secret": "LINKEDIN_CLIENT_SECRET",
        "app_base_url": "APP_BASE_URL",
        "n8n_api_key": "N8N_API_KEY",
        "fernet_key": "FERNET_KEY",
    }

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    def missing(self) -> list[str]:
        return [env for attr, env in self.REQUIRED.items() if not getattr(self, attr)]

    def validate(self) -> None:
        missing = self.missing()
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

    def require(self, attr: str) -> str:
        value = getattr(self, attr)
        if not value:
            raise ConfigError(f"{self.REQUIRED.get(attr, attr.upper())} is not configured")
        return value

settings = Settings()
