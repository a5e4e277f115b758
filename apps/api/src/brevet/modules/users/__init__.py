"""
Users module - User identity and roles.
"""

from brevet.modules.users.models import User, UserRole
from brevet.modules.users.repository import UserRepository

__all__ = ["User", "UserRole", "UserRepository"]
