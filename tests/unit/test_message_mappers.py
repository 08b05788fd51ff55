from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from chat_sync.domain.value_objects.enums import MessageStatus
from chat_sync.services.message_store import MessageStore
from chat_sync.infrastructure.http.schemas import RawFetchedMessage
from chat_sync.infrastructure.mappers.message import (
    decode_push_frame,
    fetched_to_message,
    push_to_message,
)
from tests.conftest import BASE_TIME, OWNER, make_message

UTC_PLUS_8 = timezone(timedelta(hours=8))


def test_fetched_record_maps_ids_to_strings_and_utc():
    raw = RawFetchedMessage.model_validate({
        "chat_id": 7,
        "message": "hello",
        "created_at": "2024-05-01 12:00:00",
        "sender_id": 2,
        "receiver_id": "1",
        "sender_name": "Bea",
        "receiver_name": "Ana",
    })

    message = fetched_to_message(raw, timezone.utc)

    assert message.id == "7"
    assert message.sender_id == "2"
    assert message.timestamp == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    assert message.status == MessageStatus.DELIVERED
    assert message.synthetic_id is False


def test_push_frame_with_id():
    frame = decode_push_frame(
        '{"message": "hi", "sender_id": 2, "receiver_id": 1, "message_id": 7,'
        ' "timestamp": "2024-05-01T12:00:05Z", "sender_name": "Bea"}'
    )

    message = push_to_message(frame, received_at=BASE_TIME, fallback_id="push-x")

    assert message.id == "7"
    assert message.status == MessageStatus.RECEIVED
    assert message.synthetic_id is False
    assert message.timestamp == datetime(2024, 5, 1, 12, 0, 5, tzinfo=timezone.utc)


def test_push_frame_without_id_gets_synthetic_one():
    frame = decode_push_frame('{"message": "hi", "sender_id": "2", "receiver_id": "1"}')

    message = push_to_message(frame, received_at=BASE_TIME, fallback_id="push-x")

    assert message.id == "push-x"
    assert message.synthetic_id is True
    assert message.timestamp == BASE_TIME


def test_control_frames_are_not_messages():
    assert decode_push_frame('{"type": "pong"}') is None


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"sender_id": 1, "receiver_id": 2}',
        '{"message": "hi", "receiver_id": 2}',
        '{"message": "hi", "sender_id": 1, "receiver_id": 2, "timestamp": "yesterday"}',
    ],
)
def test_malformed_push_frames_raise_value_error(raw):
    with pytest.raises(ValueError):
        decode_push_frame(raw)


def _raw(**overrides):
    record = {
        "chat_id": 55,
        "message": "hi",
        "created_at": "2024-05-01 20:00:01",
        "sender_id": 1,
        "receiver_id": 2,
    }
    record.update(overrides)
    return RawFetchedMessage.model_validate(record)


def test_naive_timestamp_is_server_wall_time():
    message = fetched_to_message(_raw(), UTC_PLUS_8)

    assert message.timestamp == datetime(2024, 5, 1, 12, 0, 1, tzinfo=timezone.utc)


def test_aware_timestamp_ignores_server_zone():
    message = fetched_to_message(_raw(created_at="2024-05-01T12:00:01Z"), UTC_PLUS_8)

    assert message.timestamp == datetime(2024, 5, 1, 12, 0, 1, tzinfo=timezone.utc)


def test_record_from_non_utc_server_supersedes_optimistic_entry():
    store = MessageStore(OWNER)
    store.merge(
        make_message(id="tmp-1", text="hi", status=MessageStatus.SENT, synthetic=True),
        local=True,
    )

    store.merge(fetched_to_message(_raw(), UTC_PLUS_8))

    assert [m.id for m in store.get("2")] == ["55"]


def test_null_message_text_becomes_empty():
    message = fetched_to_message(_raw(message=None), timezone.utc)

    assert message.text == ""


def test_receiver_picture_is_kept():
    message = fetched_to_message(
        _raw(sender_pic="me.png", receiver_pic="bea.png"), timezone.utc,
    )

    assert message.sender_pic == "me.png"
    assert message.receiver_pic == "bea.png"


def test_naive_push_timestamp_uses_server_zone():
    frame = decode_push_frame(
        '{"message": "hi", "sender_id": 2, "receiver_id": 1, "timestamp": "2024-05-01 20:00:05"}'
    )

    message = push_to_message(
        frame, received_at=BASE_TIME, fallback_id="push-x", server_tz=UTC_PLUS_8,
    )

    assert message.timestamp == datetime(2024, 5, 1, 12, 0, 5, tzinfo=timezone.utc)
