"""
Access context - the "who is asking for what" for each navigation.

This is the immutable snapshot handed to the decision engine. It contains
everything needed to decide whether a page may render.
"""

from __future__ import annotations

from dataclasses import dataclass

from cloudcast.auth.claims import is_email_domain_allowed
from cloudcast.core.models import Principal


@dataclass(frozen=True)
class AccessContext:
    """
    Inputs of one authorization decision.

    Usage:
        ctx = store.snapshot("/dashboard")
        decision = decide(ctx)
    """

    requested_path: str

    # Who
    principal: Principal | None = None
    is_global_admin: bool = False

    # Session state
    loading: bool = False
    email_domain_valid: bool = False

    # Tenancy
    has_membership: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    @classmethod
    def for_principal(
        cls,
        principal: Principal | None,
        requested_path: str,
        *,
        loading: bool = False,
        has_membership: bool = False,
        allowed_domains: list[str] | tuple[str, ...] = (),
    ) -> AccessContext:
        """Build a context, deriving the domain and admin flags from the principal."""
        return cls(
            requested_path=requested_path,
            principal=principal,
            is_global_admin=bool(principal and principal.is_global_admin),
            loading=loading,
            email_domain_valid=bool(
                principal and is_email_domain_allowed(principal.email, allowed_domains)
            ),
            has_membership=has_membership,
        )
