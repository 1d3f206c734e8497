"""
F04 - Session integration with Flask-Login.

Sign-in itself lives outside this service; this module only turns the
session's account id back into an Account and guards JSON endpoints.
"""

from __future__ import annotations

from functools import wraps
from typing import Callable

from flask import jsonify
from flask_login import current_user

from relimport import db, login_manager
from relimport.models import Account


@login_manager.user_loader
def load_user(user_id: str) -> Account | None:
    """Load an Account by primary key; returns None if not found or inactive."""
    try:
        uid = int(user_id)
    except (ValueError, TypeError):
        return None
    account = db.session.get(Account, uid)
    if account is None or not account.is_active or not account.local:
        return None
    return account


def auth_required(f: Callable) -> Callable:
    """Decorator that returns JSON 401 instead of redirecting to a login page."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"error": "Authentication required"}), 401
        return f(*args, **kwargs)

    return decorated
