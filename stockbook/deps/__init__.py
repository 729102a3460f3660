from .auth import AuthContext, require_api_access

__all__ = ["AuthContext", "require_api_access"]
