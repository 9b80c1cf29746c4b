"""
Feature modules live under this package.

Each module owns its routes and models and reuses the platform primitives
(principal resolution, role policy, audit, storage, DB session).
"""
