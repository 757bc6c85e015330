"""
In-memory session store: sessions, the global message sequence and the
operator-pending flag.
"""
import random
import threading
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from chatrelay.models import MAX_MESSAGE_LENGTH, Condition, Message, Role, Session


def _now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_condition(mode_hint: Optional[str], rng: random.Random) -> Condition:
    """Map a mode hint to a condition; unknown or missing hints pick at random."""
    mode = (mode_hint or "").upper()
    if mode == "AI":
        return Condition.AI
    if mode == "HUMAN":
        return Condition.HUMAN
    return Condition.AI if rng.random() < 0.5 else Condition.HUMAN


class SessionStore:
    """Holds every session for the process lifetime.

    A single lock serializes all mutations (session creation, message
    appends, the sequence counter and ``awaiting_operator``) and the
    snapshot reads, so a user message and an operator reply racing on the
    same session can never share a sequence number.
    """

    def __init__(
        self,
        system_prompt: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ):
        self.system_prompt = system_prompt
        self._rng = rng or random.Random()
        self._sessions: dict[str, Session] = {}
        self._last_index = 0
        self._lock = threading.Lock()

    @property
    def last_index(self) -> int:
        """Highest sequence number handed out so far."""
        with self._lock:
            return self._last_index

    def create(self, mode_hint: Optional[str] = None) -> Session:
        """Create a session, choosing its condition from *mode_hint*."""
        session = Session(
            id=str(uuid.uuid4()),
            condition=resolve_condition(mode_hint, self._rng),
            created_at=_now(),
            system_prompt=self.system_prompt,
        )
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def all(self) -> List[Session]:
        """Deep copies of every session, for export and debug views."""
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sessions.values()]

    def append(self, session: Session, role: Role, text: str) -> Message:
        """Append a message and keep ``awaiting_operator`` in step with it."""
        with self._lock:
            self._last_index += 1
            message = Message(
                i=self._last_index,
                role=role,
                text=str(text)[:MAX_MESSAGE_LENGTH],
                t=_now(),
            )
            session.messages.append(message)
            if session.condition == Condition.HUMAN:
                session.awaiting_operator = role == Role.USER
            return message

    def since(self, session: Session, cursor: float) -> List[Message]:
        with self._lock:
            return [m for m in session.messages if m.i > cursor]

    def poll(self, session: Session, cursor: float) -> Tuple[List[Message], bool]:
        """New messages after *cursor* plus the operator flag, read together."""
        with self._lock:
            items = [m for m in session.messages if m.i > cursor]
            return items, session.awaiting_operator

    def history(self, session: Session, exclude_roles: Iterable[Role] = ()) -> List[Message]:
        """Snapshot of the log without *exclude_roles*."""
        excluded = set(exclude_roles)
        with self._lock:
            return [m for m in session.messages if m.role not in excluded]

    def snapshot(self, session: Session) -> Session:
        with self._lock:
            return session.model_copy(deep=True)
