import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "portfolio"

    access_token_secret: str = "super-secret-key-change"
    access_token_expire_minutes: int = 60 * 12
    refresh_token_secret: str = "super-secret-refresh-key-change"
    refresh_token_expire_minutes: int = 60 * 24 * 10

    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    cloudinary_folder: str = "portfolio"

    cors_origin: str = "http://localhost:3000"
    cookie_secure: bool = True
    cookie_samesite: str = "lax"

    mail_relay_url: Optional[str] = None
    mail_relay_key: Optional[str] = None
    mail_from: Optional[str] = None
    contact_to: Optional[str] = None

    github_api_url: str = "https://api.github.com"

    # Seed admin, created at startup when all three are set
    admin_username: Optional[str] = None
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a local .env file if present)."""
        load_dotenv()
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            database_name=os.getenv("DATABASE_NAME", defaults.database_name),
            access_token_secret=os.getenv("ACCESS_TOKEN_SECRET", defaults.access_token_secret),
            access_token_expire_minutes=_env_int(
                "ACCESS_TOKEN_EXPIRE_MINUTES", defaults.access_token_expire_minutes
            ),
            refresh_token_secret=os.getenv("REFRESH_TOKEN_SECRET", defaults.refresh_token_secret),
            refresh_token_expire_minutes=_env_int(
                "REFRESH_TOKEN_EXPIRE_MINUTES", defaults.refresh_token_expire_minutes
            ),
            cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
            cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY"),
            cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET"),
            cloudinary_folder=os.getenv("CLOUDINARY_FOLDER", defaults.cloudinary_folder),
            cors_origin=os.getenv("CORS_ORIGIN", defaults.cors_origin),
            cookie_secure=_env_bool("COOKIE_SECURE", defaults.cookie_secure),
            cookie_samesite=os.getenv("COOKIE_SAMESITE", defaults.cookie_samesite),
            mail_relay_url=os.getenv("MAIL_RELAY_URL"),
            mail_relay_key=os.getenv("MAIL_RELAY_KEY"),
            mail_from=os.getenv("MAIL_FROM"),
            contact_to=os.getenv("CONTACT_TO"),
            github_api_url=os.getenv("GITHUB_API_URL", defaults.github_api_url),
            admin_username=os.getenv("ADMIN_USERNAME"),
            admin_email=os.getenv("ADMIN_EMAIL"),
            admin_password=os.getenv("ADMIN_PASSWORD"),
            api_prefix=os.getenv("API_PREFIX", defaults.api_prefix),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )
