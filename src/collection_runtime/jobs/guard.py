"""
Access control for collection jobs.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..errors import ErrorContext, ForbiddenError
from .types import JobRecord

DEFAULT_ADMIN_ROLES: frozenset[str] = frozenset({"org_admin"})


class AccessGuard:
    """Ownership-or-admin predicate shared by status, results and cancel.

    Evaluated against the caller of every request; nothing is cached.
    """

    def __init__(self, admin_roles: Iterable[str] = DEFAULT_ADMIN_ROLES):
        self._admin_roles = frozenset(admin_roles)

    @property
    def admin_roles(self) -> frozenset[str]:
        return self._admin_roles

    def is_admin(self, caller_role: str | None) -> bool:
        return caller_role is not None and caller_role in self._admin_roles

    def can_access(self, job: JobRecord, caller_id: str | None, caller_role: str | None) -> bool:
        """True iff the caller owns the job or holds an admin role."""
        if caller_id is not None and caller_id == job.owner_id:
            return True
        return self.is_admin(caller_role)

    def require_access(
        self,
        job: JobRecord,
        caller_id: str | None,
        caller_role: str | None,
        *,
        operation: str | None = None,
    ) -> None:
        """Raise ForbiddenError unless ``can_access`` holds."""
        if not self.can_access(job, caller_id, caller_role):
            raise ForbiddenError(
                context=ErrorContext(
                    job_id=job.job_id,
                    caller_id=caller_id,
                    operation=operation,
                ),
            )


__all__ = [
    "AccessGuard",
    "DEFAULT_ADMIN_ROLES",
]
