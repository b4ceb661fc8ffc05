"""
Identity claims.

This defines WHO may use the application and who carries cross-organization
privileges. The decision of what to render happens in policies.py.
"""

from __future__ import annotations

from typing import Iterable


def is_email_domain_allowed(email: str | None, domains: Iterable[str]) -> bool:
    """
    Check an address against the domain allow-list.

    Case-sensitive suffix match on "@{domain}". Evaluated purely from the
    address string: admin status has no influence.
    """
    if not email:
        return False
    return any(email.endswith(f"@{domain}") for domain in domains if domain)


def grants_global_admin(email: str | None, admin_emails: Iterable[str]) -> bool:
    """
    Whether a new session for this address gets the global_admin claim.

    Only the identity layer calls this, once per issued session.
    """
    if not email:
        return False
    return email in set(admin_emails)
