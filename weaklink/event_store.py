# backend/weaklink/event_store.py
"""
Append-only log of break events, backed by the `events` table.

Rows are committed before append() returns, so a returned id means the
event is durable. Timestamps are assigned here, on ingest, from the
server clock; whatever the device believed the time was is only kept in
`client_timestamp`.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import db
from .errors import StoreWriteFailure
from .models.event import BreakEvent
from .session import Session

logger = logging.getLogger(__name__)


class EventStore:
    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self._clock = clock

    def append(
        self,
        session: Session,
        group_id: int,
        app_identifier: str,
        app_name: str,
        client_timestamp: Optional[datetime] = None,
    ) -> BreakEvent:
        event = BreakEvent(
            user_id=session.user_id,
            group_id=group_id,
            app_identifier=app_identifier,
            app_name=app_name or app_identifier,
            timestamp=self._clock(),
            client_timestamp=client_timestamp,
        )
        try:
            db.session.add(event)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(
                "event append failed user_id=%s group_id=%s app=%s: %s",
                session.user_id, group_id, app_identifier, e,
            )
            raise StoreWriteFailure(str(e)) from e

        logger.info(
            "break recorded id=%s user_id=%s group_id=%s app=%s",
            event.id, event.user_id, event.group_id, event.app_identifier,
        )
        return event

    def query(
        self,
        group_id: Optional[int] = None,
        user_id: Optional[int] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[BreakEvent]:
        """Events with since <= timestamp < until, oldest first."""
        q = BreakEvent.query
        if group_id is not None:
            q = q.filter(BreakEvent.group_id == group_id)
        if user_id is not None:
            q = q.filter(BreakEvent.user_id == user_id)
        if since is not None:
            q = q.filter(BreakEvent.timestamp >= since)
        if until is not None:
            q = q.filter(BreakEvent.timestamp < until)
        return q.order_by(BreakEvent.timestamp.asc(), BreakEvent.id.asc()).all()


class LocalEventSink:
    """
    Adapts EventStore to the watcher's sink signature for in-process use
    (the watcher and the database share an interpreter). Needs an app
    context around each call, so the Flask app is held here.
    """

    def __init__(self, app, store: Optional[EventStore] = None):
        self._app = app
        self._store = store or EventStore()

    def __call__(self, session: Session, draft) -> int:
        with self._app.app_context():
            event = self._store.append(
                session,
                draft.group_id,
                draft.app_identifier,
                draft.app_name,
                client_timestamp=draft.observed_at,
            )
            return event.id
