"""
Core module - Configuration, database, credentials, gates and scheduling.
"""

from brevet.core.auth import AuthContext, AuthGate, RoleGate, get_auth_context
from brevet.core.config import ConfigurationError, get_settings, settings
from brevet.core.database import Base, close_db, get_db, init_db
from brevet.core.redis import close_redis, init_redis
from brevet.core.revocation import RevocationStore, TransientDependencyError
from brevet.core.scheduler import JobScheduler
from brevet.core.security import (
    CredentialCodec,
    CredentialKind,
    build_codecs,
    hash_password,
    verify_password,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    "ConfigurationError",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "init_redis",
    "close_redis",
    # Credentials
    "CredentialCodec",
    "CredentialKind",
    "build_codecs",
    "hash_password",
    "verify_password",
    # Gates
    "AuthContext",
    "AuthGate",
    "RoleGate",
    "get_auth_context",
    "RevocationStore",
    "TransientDependencyError",
    # Scheduling
    "JobScheduler",
]
