"""Per-match chat feed.

Server side: messages are append-only and always read in ``(created_at, id)``
order, so equal timestamps still sort deterministically by insertion.

Client side: ``ChatFeedView`` holds what a viewer has rendered for one match.
It talks to an injected transport with three calls:

- ``fetch_messages(match_id, after_id=None)`` -> list of message dicts
- ``send_message(match_id, content)`` -> message dict, raising on failure
- ``subscribe(match_id, on_message)`` -> callable that unsubscribes
"""
import logging
import threading

from pickle_match.app import db, socketio
from pickle_match.models import Match, Message
from pickle_match.services.match_lifecycle import Outcome

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000


def match_room(match_id):
    return f'match_{match_id}'


def list_messages(match_id, after_id=None):
    query = Message.query.filter(Message.match_id == match_id)
    if after_id is not None:
        query = query.filter(Message.id > after_id)
    return query.order_by(Message.created_at.asc(), Message.id.asc()).all()


def can_view_match(match, profile):
    return bool(profile) and (profile.is_admin or profile.id in match.participant_ids())


def append_message(match_id, user_id, content):
    cleaned = str(content or '').strip()
    if not cleaned:
        return Outcome.invalid('Message content is required')
    if len(cleaned) > MAX_MESSAGE_LENGTH:
        return Outcome.invalid(f'Message must be at most {MAX_MESSAGE_LENGTH} characters')

    match = db.session.get(Match, match_id)
    if not match:
        return Outcome.not_found('Match not found')
    if user_id not in match.participant_ids():
        return Outcome.forbidden('You are not a player in this match')

    message = Message(match_id=match_id, user_id=user_id, content=cleaned)
    db.session.add(message)
    db.session.commit()

    socketio.emit('new_message', message.to_dict(), room=match_room(match_id))
    return Outcome.ok(message)


def _order_key(message):
    return (str(message.get('created_at') or ''), message.get('id') or 0)


def merge_messages(rendered, incoming):
    """Merge new messages into a rendered list without duplicating ids."""
    by_id = {m['id']: m for m in rendered}
    for message in incoming:
        by_id.setdefault(message['id'], message)
    return sorted(by_id.values(), key=_order_key)


class ChatFeedView:
    """Rendered state of one match's chat for a single viewer."""

    def __init__(self, transport, match_id):
        self.transport = transport
        self.match_id = match_id
        self.messages = []
        self.draft = ''
        self.error = None
        self._unsubscribe = None
        self._catch_up_pending = False
        self._catch_up_after = None
        self._lock = threading.Lock()

    @property
    def is_subscribed(self):
        return self._unsubscribe is not None

    @property
    def last_message_id(self):
        return max((m['id'] for m in self.messages), default=None)

    def open(self):
        """Load the history and start listening for inserts."""
        try:
            history = self.transport.fetch_messages(self.match_id)
        except Exception as exc:
            logger.warning('Chat history for match %s failed to load: %s', self.match_id, exc)
            self.error = 'Could not load the chat. Try again.'
            return False

        self.error = None
        self._apply(history)
        if not self._unsubscribe:
            self._unsubscribe = self.transport.subscribe(self.match_id, self.receive)
        return True

    def receive(self, message):
        if message.get('match_id') not in (None, self.match_id):
            return
        self._apply([message])

    def reconnect(self):
        """Fetch what was missed while disconnected, then resubscribe.

        A failed catch-up leaves the view unsubscribed with ``error`` set and
        returns False. The next attempt resumes from the same point, even if
        messages were sent in between.
        """
        self._release()
        if not self._catch_up_pending:
            self._catch_up_after = self.last_message_id
            self._catch_up_pending = True
        try:
            missed = self.transport.fetch_messages(self.match_id, after_id=self._catch_up_after)
        except Exception as exc:
            logger.warning('Chat catch-up for match %s failed: %s', self.match_id, exc)
            self.error = 'Lost connection to the chat. Try again.'
            return False

        self._catch_up_pending = False
        self.error = None
        self._apply(missed)
        self._unsubscribe = self.transport.subscribe(self.match_id, self.receive)
        return True

    def send(self, text=None):
        """Send the draft, clearing it at once and restoring it if the send fails."""
        content = str(self.draft if text is None else text).strip()
        if not content:
            return None
        self.draft = ''
        try:
            sent = self.transport.send_message(self.match_id, content)
        except Exception as exc:
            logger.warning('Message to match %s was not delivered: %s', self.match_id, exc)
            self.draft = content
            self.error = 'Message not sent. Try again.'
            return None

        self.error = None
        if sent:
            self._apply([sent])
        return sent

    def close(self):
        self._release()

    def _release(self):
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe:
            unsubscribe()

    def _apply(self, incoming):
        with self._lock:
            self.messages = merge_messages(self.messages, incoming)
