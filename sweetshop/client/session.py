"""
Signed-in state of a storefront user.

A Session is the token plus the user it was issued for. SessionStore keeps it
between runs in a small JSON file; the storefront loads it at start, stores it
after login or registration, and clears it on logout.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_SESSION_FILE = Path.home() / '.sweetshop' / 'session.json'


@dataclass
class Session:
    token: str
    user: dict = field(default_factory=dict)

    @property
    def role(self):
        return self.user.get('role')

    @property
    def is_admin(self):
        return self.role == 'ADMIN'

    @classmethod
    def from_auth_response(cls, data):
        """Build a session from a ``{'token': ..., 'user': {...}}`` login/register reply"""
        return cls(token=data['token'], user=dict(data.get('user') or {}))

    def to_dict(self):
        return {'token': self.token, 'user': self.user}


class SessionStore:
    """JSON file holding at most one session"""

    def __init__(self, path=None):
        self.path = Path(path or os.getenv('SWEETSHOP_SESSION_FILE', DEFAULT_SESSION_FILE))

    def load(self):
        """Return the stored session, or None if there is none or it is unreadable"""
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
            return Session.from_auth_response(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None

    def store(self, session):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(session.to_dict(), f)
        return session

    def clear(self):
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
