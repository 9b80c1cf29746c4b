from __future__ import annotations

from dataclasses import dataclass

from flask import Flask, current_app

from app.archive.auth import IdentityProvider, JwtIdentityProvider
from app.archive.rbac import RolePolicy
from app.archive.storage import Storage, storage_from_config


@dataclass(frozen=True)
class Collaborators:
    storage: Storage
    identity: IdentityProvider
    policy: RolePolicy


def init_collaborators(app: Flask) -> Collaborators:
    """Build the storage / identity / policy handles once per app."""
    c = Collaborators(
        storage=storage_from_config(app.config),
        identity=JwtIdentityProvider(
            secret=app.config.get("IDENTITY_JWT_SECRET") or "",
            audience=app.config.get("IDENTITY_JWT_AUDIENCE") or "authenticated",
        ),
        policy=RolePolicy.from_json(app.config.get("ROLE_POLICY_JSON") or ""),
    )
    app.extensions["archive"] = c
    return c


def collaborators() -> Collaborators:
    return current_app.extensions["archive"]
