"""Session/identity collaborator: resolves the acting user's id."""

from __future__ import annotations

import os


class Session:
    """Holds the identity of the user performing store writes.

    Transfer records require an owner.  An empty or unset id resolves to
    None and the store's NOT NULL constraint rejects the write.
    """

    def __init__(self, user_id: str | None = None):
        self._user_id = user_id or None

    @classmethod
    def from_env(cls) -> Session:
        return cls(os.environ.get("FINANCE_USER_ID"))

    def current_user_id(self) -> str | None:
        return self._user_id
