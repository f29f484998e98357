import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    portal_token_ttl_days: int
    audit_page_limit_max: int
    audit_export_max_rows: int
    workflow_default_due_days: int
    version_alloc_retries: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from e


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///cde.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        portal_token_ttl_days=_getenv_int("PORTAL_TOKEN_TTL_DAYS", 90),
        audit_page_limit_max=_getenv_int("AUDIT_PAGE_LIMIT_MAX", 500),
        audit_export_max_rows=_getenv_int("AUDIT_EXPORT_MAX_ROWS", 5000),
        workflow_default_due_days=_getenv_int("WORKFLOW_DEFAULT_DUE_DAYS", 14),
        version_alloc_retries=_getenv_int("VERSION_ALLOC_RETRIES", 5),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        # lifecycle engine knobs
        "PORTAL_TOKEN_TTL_DAYS": s.portal_token_ttl_days,
        "AUDIT_PAGE_LIMIT_MAX": s.audit_page_limit_max,
        "AUDIT_EXPORT_MAX_ROWS": s.audit_export_max_rows,
        "WORKFLOW_DEFAULT_DUE_DAYS": s.workflow_default_due_days,
        "VERSION_ALLOC_RETRIES": s.version_alloc_retries,
        # JSON API only; keep payloads small
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
