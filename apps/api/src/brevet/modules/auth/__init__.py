"""
Authentication module.

Login sessions, access/refresh/verification credentials and logout
revocation. Request-time gates live in brevet.core.auth.
"""

from brevet.modules.auth.router import router
from brevet.modules.auth.schemas import LoginRequest, LoginResponse
from brevet.modules.auth.service import AuthService, AuthServiceError

__all__ = ["router", "AuthService", "AuthServiceError", "LoginRequest", "LoginResponse"]
