"""
Access control - who may see which page.

Design principles:
1. One pure decision function, evaluated in a fixed rule order
2. Identity claims (admin, domain) are settled at session issuance
3. Denial is a redirect, never an exception
4. The route guard is the only place navigation meets the engine
"""

from cloudcast.auth.claims import grants_global_admin, is_email_domain_allowed
from cloudcast.auth.context import AccessContext
from cloudcast.auth.policies import (
    ADMIN_BYPASS_PREFIXES,
    DASHBOARD_PATH,
    DOMAIN_RESTRICTED_PATH,
    LOGIN_PATH,
    ONBOARDING_PATH,
    Decision,
    DecisionKind,
    decide,
    is_admin_bypass_path,
)
from cloudcast.auth.guard import GuardAction, GuardOutcome, RouteGuard
from cloudcast.auth.tokens import (
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    decode_token,
    hash_password,
    issue_session,
    principal_from_token,
    verify_password,
)

__all__ = [
    # Engine
    "AccessContext",
    "Decision",
    "DecisionKind",
    "decide",
    "is_admin_bypass_path",
    "ADMIN_BYPASS_PREFIXES",
    "LOGIN_PATH",
    "DOMAIN_RESTRICTED_PATH",
    "ONBOARDING_PATH",
    "DASHBOARD_PATH",
    # Guard
    "GuardAction",
    "GuardOutcome",
    "RouteGuard",
    # Claims
    "grants_global_admin",
    "is_email_domain_allowed",
    # Tokens
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "decode_token",
    "hash_password",
    "issue_session",
    "principal_from_token",
    "verify_password",
]
