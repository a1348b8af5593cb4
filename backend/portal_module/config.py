import os
from dataclasses import dataclass, field


BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in os.getenv(name, default).split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    jwt_secret: str = os.getenv("PORTAL_JWT_SECRET", os.getenv("JWT_SECRET", "change-me-in-production"))
    jwt_algorithm: str = os.getenv("PORTAL_JWT_ALGORITHM", "HS256")
    jwt_exp_minutes: int = int(os.getenv("PORTAL_JWT_EXP_MINUTES", "60"))
    refresh_exp_days: int = int(os.getenv("PORTAL_REFRESH_EXP_DAYS", "14"))
    min_password_length: int = int(os.getenv("PORTAL_MIN_PASSWORD_LENGTH", "8"))
    auto_approve_admins: bool = _env_flag("PORTAL_AUTO_APPROVE_ADMINS")
    root_admin_email: str = os.getenv("ROOT_ADMIN_EMAIL", "admin@school.local")
    root_admin_password: str = os.getenv("ROOT_ADMIN_PASSWORD", "ChangeMe@123")
    smtp_host: str = os.getenv("SMTP_SERVER", "smtp.gmail.com")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: str = os.getenv("SMTP_EMAIL", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "").replace(" ", "")
    storage_dir: str = os.getenv("PORTAL_STORAGE_DIR", os.path.join(BACKEND_DIR, "storage"))
    storage_public_base: str = os.getenv("PORTAL_STORAGE_PUBLIC_BASE", "/storage")
    max_upload_bytes: int = int(os.getenv("PORTAL_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
    groq_api_key: str = os.getenv("GROQ_API_KEY", "")
    assistant_model: str = os.getenv("OG_ASSIST_MODEL", "llama-3.1-8b-instant")
    school_name: str = os.getenv("SCHOOL_NAME", "Ogwini Comprehensive Technical High School")
    cors_origins: tuple[str, ...] = field(
        default_factory=lambda: _env_list("PORTAL_CORS_ORIGINS", "http://localhost:5173,http://localhost:8000")
    )


settings = Settings()
