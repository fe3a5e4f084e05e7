"""Typed readers for the environment variables the settings module consumes."""

import os
from urllib.parse import urlparse

from django.core.exceptions import ImproperlyConfigured

DJANGO_ENVS = ("dev", "test", "staging", "prod")
TRUTHY = {"1", "true", "t", "yes", "y", "on"}
POSTGRES_PARTS = ("NAME", "USER", "PASSWORD", "HOST", "PORT")


def env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def env_bool(name: str, default: bool = False) -> bool:
    value = env_str(name)
    return default if value is None else value.lower() in TRUTHY


def env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    raw = env_str(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"{name} must be an integer, got {raw!r}.")
    if minimum is not None and value < minimum:
        raise ImproperlyConfigured(f"{name} must be >= {minimum}.")
    return value


def env_list(name: str, default: list[str] | None = None) -> list[str]:
    value = env_str(name)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]


def django_env() -> str:
    value = (env_str("DJANGO_ENV", "dev") or "dev").lower()
    if value not in DJANGO_ENVS:
        raise ImproperlyConfigured(f"DJANGO_ENV must be one of: {', '.join(DJANGO_ENVS)}.")
    return value


def _postgres_from_url(database_url: str) -> dict[str, str]:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"postgres", "postgresql"}:
        raise ImproperlyConfigured("DATABASE_URL must use postgres:// or postgresql:// scheme.")
    if not parsed.path or parsed.path == "/":
        raise ImproperlyConfigured("DATABASE_URL must include a database name in the path.")
    return {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": parsed.path.lstrip("/"),
        "USER": parsed.username or "",
        "PASSWORD": parsed.password or "",
        "HOST": parsed.hostname or "",
        "PORT": str(parsed.port or ""),
    }


def _postgres_from_parts() -> dict[str, str]:
    config = {"ENGINE": "django.db.backends.postgresql"}
    config.update({part: env_str(f"DB_{part}", "") for part in POSTGRES_PARTS})
    return config


def database_config(environment: str, base_dir) -> dict[str, str]:
    """Resolve the default database.

    ``test`` always uses SQLite. ``dev`` falls back to a local PostgreSQL when
    nothing is configured; ``staging`` and ``prod`` must be fully configured.
    """
    if environment == "test":
        return {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": env_str("TEST_SQLITE_PATH", str(base_dir / "test.sqlite3")),
        }

    database_url = env_str("DATABASE_URL")
    config = _postgres_from_url(database_url) if database_url else _postgres_from_parts()
    missing = [part for part in POSTGRES_PARTS if not config.get(part)]
    if not missing:
        return config

    if environment == "dev":
        return {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": "stockledger",
            "USER": "stockledger",
            "PASSWORD": "stockledger",
            "HOST": "localhost",
            "PORT": "5432",
        }
    raise ImproperlyConfigured(
        "Database configuration is incomplete for staging/prod. "
        f"Set DATABASE_URL or all DB_* vars. Missing: {', '.join(f'DB_{part}' for part in missing)}."
    )
