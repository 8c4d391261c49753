# adrms/services/auth_utils.py
from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import jsonify
from flask_jwt_extended import get_jwt, get_jwt_identity

from adrms.models import ROLE_SUPER_ADMIN


class MissingOrganizationError(PermissionError):
    """The caller's session carries no organization scope."""


@dataclass(frozen=True)
class Identity:
    user_id: Optional[int]
    organization_id: Optional[int]
    role: str = ""

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def require_organization(self) -> int:
        if not self.organization_id:
            raise MissingOrganizationError("Unauthorized: No organization context")
        return self.organization_id


def _safe_int(x):
    try:
        return int(x)
    except (TypeError, ValueError):
        return None


def get_request_identity() -> Identity:
    """Identity of the current request; call inside a ``jwt_required`` view."""
    claims = get_jwt() or {}
    return Identity(
        user_id=_safe_int(get_jwt_identity()),
        organization_id=_safe_int(claims.get("organization_id")),
        role=(claims.get("role") or "").strip().upper(),
    )


def super_admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not get_request_identity().is_super_admin:
            return jsonify({"error": "Super admins only"}), 403
        return fn(*args, **kwargs)

    return wrapper
