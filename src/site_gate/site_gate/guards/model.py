from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """Gate operator account. A guard works at exactly one site."""

    guard_id: int
    full_name: str
    username: str
    password_hash: str
    site_id: int
    is_active: bool = True


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    expires_in: int
    guard: Guard
