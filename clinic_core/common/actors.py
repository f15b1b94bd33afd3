# clinic_core/common/actors.py
from __future__ import annotations


def actor_user_id(user) -> int | None:
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return getattr(user, "id", None)


def actor_name(user) -> str:
    """
    Display name written into logs and audit metadata ("System" when anonymous).
    """
    if user is None or not getattr(user, "is_authenticated", False):
        return "System"
    full = (user.get_full_name() or "").strip() if hasattr(user, "get_full_name") else ""
    return full or user.get_username()
