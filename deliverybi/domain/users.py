from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from deliverybi.core.security import hash_password, verify_password


@dataclass(frozen=True)
class DemoUser:
    """In-memory demo accounts for local environments."""

    id: str
    email: str
    name: str
    password: str
    roles: List[str]
    companies: List[str] = field(default_factory=list)


_DEMO_USERS: List[DemoUser] = [
    DemoUser(
        id="user-lucia",
        email="lucia@deliverybi.es",
        name="Lucía Martín",
        password="consultora123",
        roles=["consultant"],
        companies=["1", "2"],
    ),
    DemoUser(
        id="user-jordi",
        email="jordi@deliverybi.es",
        name="Jordi Puig",
        password="manager123",
        roles=["manager"],
        companies=["1", "2", "3"],
    ),
    DemoUser(
        id="user-admin",
        email="admin@deliverybi.es",
        name="Admin",
        password="admin12345",
        roles=["admin"],
        companies=[],
    ),
]

_BY_EMAIL: Dict[str, DemoUser] = {user.email.lower(): user for user in _DEMO_USERS}
_BY_ID: Dict[str, DemoUser] = {user.id: user for user in _DEMO_USERS}


@lru_cache(maxsize=None)
def _password_hash(user_id: str) -> str:
    return hash_password(_BY_ID[user_id].password)


def get_demo_user_by_email(email: str) -> Optional[DemoUser]:
    return _BY_EMAIL.get(email.lower())


def get_demo_user_by_id(user_id: str) -> Optional[DemoUser]:
    return _BY_ID.get(user_id)


def authenticate(email: str, password: str) -> Optional[DemoUser]:
    user = get_demo_user_by_email(email)
    if user is None or not verify_password(password, _password_hash(user.id)):
        return None
    return user


def list_demo_users() -> Iterable[DemoUser]:
    return tuple(_DEMO_USERS)
