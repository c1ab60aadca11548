"""Customer domain - customers and their addresses"""

from .router import router

__all__ = ["router"]
