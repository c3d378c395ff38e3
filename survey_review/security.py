"""
survey_review/security.py

Access control helpers for the survey review module.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Permissions are granular codes "module:action":
  - levantamientos:ver      -> see the survey list
  - levantamientos:revisar  -> open a survey for review (page + API reads)
  - levantamientos:aprobar  -> approve / reject / approve all / reopen
- Admin: every permission.

The review workflow never reads the logged-in user itself. Routes build a
ReviewContext from current_user and pass it down explicitly.

This module also provides a global safety net:
- readonly_guard() blocks POST/PUT/PATCH/DELETE for users who cannot approve.
  Wire it via app.before_request in app factory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, FrozenSet, Iterable, Optional, Tuple

from flask import jsonify, render_template, request
from flask_login import current_user

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

PERM_VIEW = "levantamientos:ver"
PERM_REVIEW = "levantamientos:revisar"
PERM_APPROVE = "levantamientos:aprobar"

ALL_PERMISSIONS = (PERM_VIEW, PERM_REVIEW, PERM_APPROVE)


@dataclass(frozen=True)
class ReviewContext:
    """Who is acting, and what they may do. Passed explicitly to the workflow."""

    user_id: Optional[int] = None
    username: Optional[str] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def has_any_permission(self, permissions: Iterable[str]) -> bool:
        return any(p in self.permissions for p in permissions)

    def has_all_permissions(self, permissions: Iterable[str]) -> bool:
        return all(p in self.permissions for p in permissions)

    @property
    def can_approve(self) -> bool:
        return self.has_permission(PERM_APPROVE)


def context_for_user(user: Any) -> ReviewContext:
    """Build a ReviewContext for a User row (admins get every permission)."""
    if user is None or not getattr(user, "is_authenticated", False):
        return ReviewContext()

    if getattr(user, "is_admin", False):
        perms = frozenset(ALL_PERMISSIONS)
    else:
        perms = frozenset(user.permission_codes())

    return ReviewContext(user_id=user.id, username=user.username, permissions=perms)


def review_context() -> ReviewContext:
    """ReviewContext for the current request's user."""
    return context_for_user(current_user)


def _forbidden() -> Tuple[Any, int]:
    """Render a consistent 403 page (JSON body for the API blueprint)."""
    if request.blueprint == "api":
        return jsonify({"message": "No tiene permisos para esta operación."}), 403
    return render_template("errors/403.html"), 403


def has_permission(permission: str) -> bool:
    return review_context().has_permission(permission)


def readonly_guard() -> Optional[Tuple[Any, int]]:
    """
    Global guard: users without the approve permission cannot mutate data.

    Allow-list for safe self-service mutating endpoints:
    - auth.login
    - auth.logout
    """
    if request.method not in MUTATING_METHODS:
        return None

    if not current_user.is_authenticated:
        return None

    if has_permission(PERM_APPROVE):
        return None

    endpoint = (request.endpoint or "").strip()
    allow_mutating_endpoints = {"auth.login", "auth.logout"}
    if endpoint in allow_mutating_endpoints:
        return None

    return _forbidden()


def permission_required(*permissions: str) -> Callable[..., Any]:
    """
    Decorator factory: require at least one of the given permission codes.

    Usage:
        @permission_required(PERM_REVIEW, PERM_APPROVE)
        def review(survey_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not current_user.is_authenticated:
                return _forbidden()
            if not review_context().has_any_permission(permissions):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
