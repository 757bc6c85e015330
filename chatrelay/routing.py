"""
Routing engine: message intake, responder dispatch, polling and operator
handoff on top of the session store.
"""
import logging
from typing import List, Optional

from chatrelay.errors import Internal, InvalidInput, InvalidState, MissingFields, NotFound, RelayError
from chatrelay.models import (
    ChatResult,
    Condition,
    Debrief,
    InboxItem,
    OperatorTranscript,
    PollResult,
    Role,
    Session,
    SessionSummary,
)
from chatrelay.responder import Responder
from chatrelay.session_manager import SessionStore

logger = logging.getLogger(__name__)


class RoutingEngine:
    """Decides who answers each session and exposes the operator queue.

    AI sessions are answered inline by the responder. Human sessions are
    flagged as awaiting an operator after every user turn until an operator
    reply is appended.
    """

    def __init__(
        self,
        store: SessionStore,
        responder: Responder,
        default_mode: Optional[str] = None,
    ):
        self.store = store
        self.responder = responder
        self.default_mode = default_mode

    def _require(self, session_id: Optional[str]) -> Session:
        session = self.store.get(session_id)
        if session is None:
            raise NotFound()
        return session

    def create_session(self, mode_hint: Optional[str] = None) -> Session:
        session = self.store.create(mode_hint or self.default_mode)
        logger.info("Created session %s condition=%s", session.id[:8], session.condition.value)
        return session

    async def handle_user_message(
        self, session_id: Optional[str], text: Optional[str]
    ) -> ChatResult:
        """Record a user turn and either answer it or queue it for an operator."""
        if not session_id or not text:
            raise MissingFields()
        session = self._require(session_id)

        user_msg = self.store.append(session, Role.USER, text)

        if session.condition == Condition.HUMAN:
            logger.debug("Session %s queued for operator", session.id[:8])
            return ChatResult(queued=True)

        # The responder never sees its own earlier replies; the new user
        # turn is part of the history and is also sent as the prompt
        history = self.store.history(session, exclude_roles=(Role.AI,))
        try:
            reply = await self.responder.respond(
                user_msg.text, history, session.system_prompt
            )
        except RelayError:
            logger.exception("Responder failed for session %s", session.id[:8])
            raise
        except Exception as e:
            logger.exception("Responder failed for session %s", session.id[:8])
            raise Internal() from e

        ai_msg = self.store.append(session, Role.AI, reply)
        return ChatResult(reply=ai_msg.text, i=ai_msg.i, queued=False)

    def poll(self, session_id: Optional[str], cursor: float = 0) -> PollResult:
        session = self._require(session_id)
        items, awaiting = self.store.poll(session, cursor)
        return PollResult(items=items, awaiting_operator=awaiting)

    def operator_reply(self, session_id: Optional[str], text: Optional[str]) -> None:
        session = self._require(session_id)
        if session.condition != Condition.HUMAN:
            raise InvalidState()
        if not text:
            raise InvalidInput()
        self.store.append(session, Role.HUMAN, text)
        logger.info("Operator replied to session %s", session.id[:8])

    def operator_inbox(self) -> List[InboxItem]:
        """Human sessions awaiting a reply, most recent user turn first."""
        items = []
        for session in self.store.all():
            if session.condition != Condition.HUMAN or not session.awaiting_operator:
                continue
            last_user = next(
                (m for m in reversed(session.messages) if m.role == Role.USER), None
            )
            items.append(
                InboxItem(
                    session_id=session.id,
                    last_user_text=last_user.text if last_user else "",
                    last_at=last_user.t if last_user else session.created_at,
                )
            )
        items.sort(key=lambda item: item.last_at, reverse=True)
        return items

    def operator_transcript(self, session_id: Optional[str]) -> OperatorTranscript:
        session = self.store.snapshot(self._require(session_id))
        return OperatorTranscript(
            session_id=session.id,
            messages=session.messages,
            condition=session.condition,
        )

    def debrief(self, session_id: Optional[str]) -> Debrief:
        session = self.store.snapshot(self._require(session_id))
        return Debrief(
            session_id=session.id,
            condition=session.condition,
            created_at=session.created_at,
            transcript=session.messages,
        )

    def export(self) -> List[Session]:
        return self.store.all()

    def debug_sessions(self) -> List[SessionSummary]:
        return [
            SessionSummary(
                id=s.id,
                condition=s.condition,
                msgs=len(s.messages),
                awaiting_operator=s.awaiting_operator,
            )
            for s in self.store.all()
        ]
