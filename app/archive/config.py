import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    upload_token_secret: str
    lookup_code_salt: str
    identity_jwt_secret: str
    identity_jwt_audience: str
    role_policy_json: str

    max_upload_bytes: int
    download_url_ttl_seconds: int


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
        database_url=_getenv("DATABASE_URL", "sqlite:///archive.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        upload_token_secret=_getenv("UPLOAD_TOKEN_SECRET", ""),
        lookup_code_salt=_getenv("LOOKUP_CODE_SALT", ""),
        identity_jwt_secret=_getenv("IDENTITY_JWT_SECRET", ""),
        identity_jwt_audience=_getenv("IDENTITY_JWT_AUDIENCE", "authenticated"),
        role_policy_json=_getenv("ROLE_POLICY_JSON", ""),
        max_upload_bytes=_getenv_int("MAX_UPLOAD_BYTES", 25 * 1024 * 1024),
        download_url_ttl_seconds=_getenv_int("DOWNLOAD_URL_TTL_SECONDS", 120),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # secrets for the transfer/lookup core (never logged)
        "UPLOAD_TOKEN_SECRET": s.upload_token_secret,
        "LOOKUP_CODE_SALT": s.lookup_code_salt,
        "IDENTITY_JWT_SECRET": s.identity_jwt_secret,
        "IDENTITY_JWT_AUDIENCE": s.identity_jwt_audience,
        "ROLE_POLICY_JSON": s.role_policy_json,
        "MAX_UPLOAD_BYTES": s.max_upload_bytes,
        "DOWNLOAD_URL_TTL_SECONDS": s.download_url_ttl_seconds,
        # request bodies only carry JSON or (local backend) the object bytes
        "MAX_CONTENT_LENGTH": s.max_upload_bytes + 1024 * 1024,
    }
