# island_tracker/auth/principal.py
from __future__ import annotations

from typing import Optional, Protocol


class Authenticator(Protocol):
    def is_authenticated(self) -> bool:
        ...

    def current_user_id(self) -> Optional[str]:
        ...


class Principal:
    """Authentication fact handed to the challenge core: who is acting, if anyone."""

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id

    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    def current_user_id(self) -> Optional[str]:
        return self.user_id

    def __repr__(self) -> str:
        return f"Principal(user_id={self.user_id!r})"
