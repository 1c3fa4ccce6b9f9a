"""Session authentication and role-based guards."""

from storefront.auth.session import Role, SessionAuthenticator, SessionUser, UserStatus

__all__ = ["Role", "SessionAuthenticator", "SessionUser", "UserStatus"]
