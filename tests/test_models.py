"""Module tests: message_archive.models (tables and document field mapping)."""

from message_archive.models import Message, Notification


def test_message_table_name():
    assert Message.__tablename__ == "messages"


def test_notification_table_name():
    assert Notification.__tablename__ == "notifications"


def test_message_has_expected_columns():
    cols = {c.name for c in Message.__table__.columns}
    assert cols == {"id", "quote_request_id", "text", "sender", "sender_country", "created_at", "files", "read_by"}


def test_notification_has_expected_columns():
    cols = {c.name for c in Notification.__table__.columns}
    assert {"id", "recipient_country", "message", "is_read", "created_at"} <= cols


def test_field_maps_point_at_columns():
    for model in (Message, Notification):
        cols = {c.key for c in model.__table__.columns}
        assert set(model.FIELDS.values()) <= cols
        assert model.FIELDS["id"] == "id"
        assert model.FIELDS["createdAt"] == "created_at"


def test_created_at_is_timezone_aware():
    assert Message.__table__.c.created_at.type.timezone is True
    assert Notification.__table__.c.created_at.type.timezone is True
