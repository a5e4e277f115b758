"""
Admin module.

Operational endpoints restricted to the admin role.
"""

from brevet.modules.admin.router import router

__all__ = ["router"]
