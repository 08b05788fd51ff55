"""In-memory message store fed by both the push channel and history polls."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Iterator

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import MessageStatus

logger = logging.getLogger(__name__)

StoreListener = Callable[[frozenset[str]], None]


class MessageStore:
    """Single source of truth for one user's messages.

    Messages are bucketed by conversation key (the counterparty id) and
    deduplicated by ``id`` within a bucket, first writer wins. Entries whose
    id was made up on the client (optimistic sends, push frames without a
    ``message_id``) are superseded by an authoritative record carrying the
    same sender, receiver and text within ``fingerprint_window``. A push
    copy without an id is dropped when such a twin is already stored,
    either authoritative or authored in this session.
    """

    def __init__(
        self,
        owner_id: str,
        *,
        fingerprint_window: timedelta = timedelta(seconds=5),
    ) -> None:
        self._owner_id = owner_id
        self._window = fingerprint_window
        self._buckets: dict[str, dict[str, Message]] = {}
        self._synthetic: dict[str, set[str]] = {}
        self._local: set[str] = set()
        self._started: dict[str, Conversation] = {}
        self._unread: dict[str, int] = {}
        self._listeners: list[StoreListener] = []

    @property
    def owner_id(self) -> str:
        return self._owner_id

    # -- listeners -----------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, keys: set[str]) -> None:
        if not keys:
            return
        changed = frozenset(keys)
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception:
                logger.exception("Store listener failed")

    # -- writes ----------------------------------------------------------------

    def merge(self, incoming: Message | Iterable[Message], *, local: bool = False) -> int:
        """Insert messages not seen yet; return how many were stored.

        ``local`` marks messages authored in this session, which are never
        folded into an existing authoritative record.
        """
        batch = [incoming] if isinstance(incoming, Message) else list(incoming)
        changed: set[str] = set()
        added = 0
        for message in batch:
            key = message.counterparty(self._owner_id)
            bucket = self._buckets.setdefault(key, {})
            if message.id in bucket:
                continue

            if message.synthetic_id:
                if not local and self._find_known_twin(bucket, message) is not None:
                    logger.debug("Dropping push copy of already stored message in %s", key)
                    continue
                self._synthetic.setdefault(key, set()).add(message.id)
                if local:
                    self._local.add(message.id)
            else:
                twin = self._find_synthetic_twin(key, bucket, message)
                if twin is not None:
                    self._remove(key, twin.id)
                    message = _carry_local_fields(twin, message)
                    logger.debug("Message %s supersedes local entry %s", message.id, twin.id)

            bucket[message.id] = message
            changed.add(key)
            added += 1

        self._notify(changed)
        return added

    def reconcile(self, temp_id: str, confirmed: Message) -> None:
        """Replace the optimistic entry ``temp_id`` with its confirmed version."""
        key = confirmed.counterparty(self._owner_id)
        bucket = self._buckets.setdefault(key, {})
        previous = self._remove(key, temp_id)
        if confirmed.id not in bucket:
            if previous is not None:
                confirmed = _carry_local_fields(previous, confirmed)
            bucket[confirmed.id] = confirmed
        self._notify({key})

    def update_status(self, message_id: str, status: MessageStatus) -> Message | None:
        for key, bucket in self._buckets.items():
            current = bucket.get(message_id)
            if current is None:
                continue
            if current.status != status:
                bucket[message_id] = current.with_status(status)
                self._notify({key})
            return bucket[message_id]
        return None

    def ensure_conversation(
        self,
        counterparty_id: str,
        display_name: str,
        picture_ref: str | None,
        started_at: datetime,
    ) -> Conversation:
        """Register a conversation the user started before any message exists."""
        existing = self._started.get(counterparty_id)
        if existing is not None:
            return existing
        conversation = Conversation(
            counterparty_id=counterparty_id,
            display_name=display_name,
            picture_ref=picture_ref,
            last_message_text="",
            last_message_at=None,
            started_at=started_at,
        )
        self._started[counterparty_id] = conversation
        self._notify({counterparty_id})
        return conversation

    def set_unread(self, counterparty_id: str, count: int) -> None:
        if self._unread.get(counterparty_id, 0) == count:
            return
        self._unread[counterparty_id] = count
        self._notify({counterparty_id})

    # -- reads -----------------------------------------------------------------

    def get(self, counterparty_id: str) -> list[Message]:
        """Messages of one conversation, oldest first."""
        bucket = self._buckets.get(counterparty_id, {})
        return sorted(bucket.values(), key=lambda m: m.timestamp)

    def find(self, message_id: str) -> Message | None:
        for bucket in self._buckets.values():
            found = bucket.get(message_id)
            if found is not None:
                return found
        return None

    def all(self) -> Iterator[Message]:
        for bucket in self._buckets.values():
            yield from bucket.values()

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())

    @property
    def started_conversations(self) -> dict[str, Conversation]:
        return dict(self._started)

    @property
    def unread_counts(self) -> dict[str, int]:
        return dict(self._unread)

    # -- internals -------------------------------------------------------------

    def _remove(self, key: str, message_id: str) -> Message | None:
        removed = self._buckets.get(key, {}).pop(message_id, None)
        self._synthetic.get(key, set()).discard(message_id)
        self._local.discard(message_id)
        return removed

    def _find_synthetic_twin(
        self, key: str, bucket: dict[str, Message], message: Message,
    ) -> Message | None:
        best: Message | None = None
        best_gap: timedelta | None = None
        for candidate_id in self._synthetic.get(key, ()):
            candidate = bucket[candidate_id]
            gap = self._gap_if_same(candidate, message)
            if gap is not None and (best_gap is None or gap < best_gap):
                best, best_gap = candidate, gap
        return best

    def _find_known_twin(
        self, bucket: dict[str, Message], message: Message,
    ) -> Message | None:
        for candidate in bucket.values():
            if candidate.synthetic_id and candidate.id not in self._local:
                continue
            if self._gap_if_same(candidate, message) is not None:
                return candidate
        return None

    def _gap_if_same(self, a: Message, b: Message) -> timedelta | None:
        if (a.sender_id, a.receiver_id, a.text) != (b.sender_id, b.receiver_id, b.text):
            return None
        gap = abs(a.timestamp - b.timestamp)
        return gap if gap <= self._window else None


def _carry_local_fields(local: Message, authoritative: Message) -> Message:
    """Keep what only the client knew about a message (reply, attachment, names)."""
    return replace(
        authoritative,
        reply_to=authoritative.reply_to or local.reply_to,
        attachment=authoritative.attachment or local.attachment,
        sender_name=authoritative.sender_name or local.sender_name,
        receiver_name=authoritative.receiver_name or local.receiver_name,
        sender_pic=authoritative.sender_pic or local.sender_pic,
        receiver_pic=authoritative.receiver_pic or local.receiver_pic,
    )
