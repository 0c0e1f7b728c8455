"""Database URL helpers shared by the settings classes and the maintenance scripts."""
from urllib.parse import quote_plus


ASYNC_DRIVER_PREFIXES = {
    "postgresql+asyncpg://": "postgresql://",
    "sqlite+aiosqlite://": "sqlite://",
}


def get_database_url(
    driver: str,
    host: str,
    port: int,
    user: str,
    password: str,
    name: str,
) -> str:
    """
    Build a database URL from its components.

    The password is percent-encoded, so generated secrets containing
    '@' or '/' survive.

    Example:
        >>> get_database_url("postgresql+asyncpg", "db", 5432, "app", "p@ss", "verification")
        'postgresql+asyncpg://app:p%40ss@db:5432/verification'
    """
    return f"{driver}://{user}:{quote_plus(password)}@{host}:{port}/{name}"


def to_sync_url(url: str) -> str:
    """Swap an async driver for its blocking counterpart (psycopg2, pysqlite)."""
    for async_prefix, sync_prefix in ASYNC_DRIVER_PREFIXES.items():
        if url.startswith(async_prefix):
            return sync_prefix + url[len(async_prefix):]
    return url


def redact_url(url: str) -> str:
    """Drop the credentials part of a URL for printing."""
    return url.split("@", 1)[1] if "@" in url else url
