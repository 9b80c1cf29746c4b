"""
Operations diagnostics.

Each check yields {id, label, level, detail} with level ok | warn | error.
Used by the DIRECTOR-only /api/system/operations report and by the
startup storage check in create_app().
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from flask import Flask
from sqlalchemy import literal_column, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.archive.models import Base
from app.archive.storage import LocalStorage, S3Storage, Storage

OK = "ok"
WARN = "warn"
ERROR = "error"

REQUIRED_SECRETS = ("UPLOAD_TOKEN_SECRET", "LOOKUP_CODE_SALT", "IDENTITY_JWT_SECRET")


def _check(check_id: str, label: str, level: str, detail: str) -> dict[str, str]:
    return {"id": check_id, "label": label, "level": level, "detail": detail}


def check_secret(config: Any, name: str) -> dict[str, str]:
    present = bool(config.get(name))
    return _check(
        f"env_{name}",
        f"Env {name}",
        OK if present else ERROR,
        "Configured" if present else "Missing environment variable",
    )


def check_table(s: Session, table_name: str) -> dict[str, str]:
    table = Base.metadata.tables[table_name]
    try:
        s.execute(select(literal_column("1")).select_from(table).limit(1)).first()
    except SQLAlchemyError as e:
        s.rollback()
        detail = str(getattr(e, "orig", None) or e).splitlines()[0]
        return _check(f"table_{table_name}", f"Table {table_name}", ERROR, detail)
    return _check(f"table_{table_name}", f"Table {table_name}", OK, "Reachable")


def check_storage(storage: Storage) -> dict[str, str]:
    if isinstance(storage, S3Storage):
        label = f"Storage bucket {storage.bucket or '(unset)'}"
        if not storage.bucket:
            return _check("storage_bucket", label, ERROR, "S3_BUCKET is not set")
        try:
            storage._client().head_bucket(Bucket=storage.bucket)
        except (BotoCoreError, ClientError) as e:
            return _check("storage_bucket", label, ERROR, str(e))
        return _check("storage_bucket", label, OK, "Bucket exists")
    if isinstance(storage, LocalStorage):
        label = "Local storage root"
        if storage.root.is_dir():
            return _check("storage_bucket", label, OK, f"{storage.root} exists")
        # created on first write
        return _check("storage_bucket", label, WARN, f"{storage.root} does not exist yet")
    return _check("storage_bucket", "Storage", WARN, f"Unknown backend {type(storage).__name__}")


def check_schema(app: Flask) -> dict[str, str]:
    missing = app.config.get("_schema_health_missing") or []
    if app.config.get("_schema_health_ok", True) and not missing:
        return _check("schema", "Schema columns", OK, "Up to date")
    return _check("schema", "Schema columns", ERROR, "Missing: " + ", ".join(missing))


def run_checks(app: Flask, s: Session, storage: Storage) -> dict[str, Any]:
    checks = [check_secret(app.config, name) for name in REQUIRED_SECRETS]
    checks.append(_check("runtime_env", "Runtime environment", OK, str(app.config.get("ENV") or "unknown")))
    checks.append(check_schema(app))
    checks.extend(check_table(s, name) for name in sorted(Base.metadata.tables))
    checks.append(check_storage(storage))

    failures = sum(1 for c in checks if c["level"] == ERROR)
    warns = sum(1 for c in checks if c["level"] == WARN)
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "status": ERROR if failures else WARN if warns else OK,
            "total_checks": len(checks),
            "failures": failures,
            "warns": warns,
        },
        "checks": checks,
    }
