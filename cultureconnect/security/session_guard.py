"""
Session guard — idle timeout, identifier rotation and hijack detection.

States: Unauthenticated → Active → (Expired | Hijacked) → Destroyed.
The guard itself only decides; SecurityManager performs the destroy and
regenerate side effects against the real session.
"""

import enum
from dataclasses import asdict, dataclass
from typing import MutableMapping, Optional

SESSION_FIELDS = ('user_id', 'last_activity', 'last_regeneration', 'ip_address', 'user_agent')


class SessionStatus(enum.Enum):
    ACTIVE = 'active'
    UNAUTHENTICATED = 'unauthenticated'
    EXPIRED = 'expired'
    HIJACKED = 'hijacked'


@dataclass
class SessionContext:
    """Typed view of the authentication fields stored in the session."""

    user_id: Optional[int] = None
    last_activity: Optional[float] = None
    last_regeneration: Optional[float] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def load(cls, session: MutableMapping) -> 'SessionContext':
        return cls(**{field: session.get(field) for field in SESSION_FIELDS})

    def save(self, session: MutableMapping) -> None:
        for field, value in asdict(self).items():
            if value is None:
                session.pop(field, None)
            else:
                session[field] = value

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None


@dataclass
class GuardDecision:
    status: SessionStatus
    rotate: bool = False


class SessionGuard:
    """Pure state transitions for one request; times are epoch seconds."""

    def __init__(self, idle_timeout: int = 1800, rotation_interval: int = 900):
        self.idle_timeout = idle_timeout
        self.rotation_interval = rotation_interval

    def start(self, ctx: SessionContext, user_id: int, ip: str, user_agent: str, now: float) -> None:
        ctx.user_id = user_id
        ctx.last_activity = now
        ctx.last_regeneration = now
        ctx.ip_address = ip
        ctx.user_agent = user_agent

    def check(self, ctx: SessionContext, ip: str, now: float) -> GuardDecision:
        """
        Decide the session's fate for this request and stamp activity.

        IP mismatch wins over idle time: a hijacked session is reported as
        hijacked even if it has also gone stale.
        """
        if not ctx.authenticated:
            return GuardDecision(SessionStatus.UNAUTHENTICATED)

        if ctx.ip_address is not None and ctx.ip_address != ip:
            return GuardDecision(SessionStatus.HIJACKED)

        if ctx.last_activity is not None and now - ctx.last_activity > self.idle_timeout:
            return GuardDecision(SessionStatus.EXPIRED)

        ctx.last_activity = now
        if ctx.ip_address is None:
            ctx.ip_address = ip

        rotate = False
        if ctx.last_regeneration is None:
            ctx.last_regeneration = now
        elif now - ctx.last_regeneration > self.rotation_interval:
            ctx.last_regeneration = now
            rotate = True

        return GuardDecision(SessionStatus.ACTIVE, rotate=rotate)
