"""Tests for conversation and message database operations with mocked Supabase."""

from unittest.mock import MagicMock, patch

import pytest

from app.db.conversations import (
    create_conversation,
    get_conversation,
    insert_message,
    list_messages,
    update_conversation_category,
)


@pytest.fixture
def mock_supabase():
    """Mock Supabase client."""
    with patch("app.db.conversations.get_supabase") as mock:
        yield mock.return_value


def _response(data):
    response = MagicMock()
    response.data = data
    return response


class TestCreateConversation:
    def test_create_with_visitor(self, mock_supabase):
        row = {"id": "conv-1", "title": "Risk review", "category": "general", "visitor_id": "v1"}
        mock_supabase.table.return_value.insert.return_value.execute.return_value = _response([row])

        result = create_conversation("Risk review", visitor_id="v1")

        assert result == row
        mock_supabase.table.assert_called_once_with("conversations")
        mock_supabase.table.return_value.insert.assert_called_once_with(
            {"title": "Risk review", "category": "general", "visitor_id": "v1"}
        )

    def test_create_raises_when_empty(self, mock_supabase):
        mock_supabase.table.return_value.insert.return_value.execute.return_value = _response([])

        with pytest.raises(ValueError, match="No data returned"):
            create_conversation("Risk review")


class TestGetConversation:
    def test_found(self, mock_supabase):
        row = {"id": "conv-1", "title": "Risk review"}
        chain = mock_supabase.table.return_value.select.return_value.eq.return_value
        chain.maybe_single.return_value.execute.return_value = _response(row)

        assert get_conversation("conv-1") == row
        mock_supabase.table.return_value.select.return_value.eq.assert_called_once_with("id", "conv-1")

    def test_missing(self, mock_supabase):
        chain = mock_supabase.table.return_value.select.return_value.eq.return_value
        chain.maybe_single.return_value.execute.return_value = None

        assert get_conversation("conv-404") is None


def test_list_messages_ordered(mock_supabase):
    rows = [{"id": "m1", "role": "user"}, {"id": "m2", "role": "assistant"}]
    chain = mock_supabase.table.return_value.select.return_value.eq.return_value
    chain.order.return_value.execute.return_value = _response(rows)

    assert list_messages("conv-1") == rows
    chain.order.assert_called_once_with("created_at")


def test_insert_message_bumps_conversation(mock_supabase):
    row = {"id": "m1", "conversation_id": "conv-1", "role": "user", "content": "Hello"}
    mock_supabase.table.return_value.insert.return_value.execute.return_value = _response([row])

    result = insert_message("conv-1", "user", "Hello")

    assert result == row
    mock_supabase.table.return_value.insert.assert_called_once_with(
        {"conversation_id": "conv-1", "role": "user", "content": "Hello", "metadata": None}
    )
    update_payload = mock_supabase.table.return_value.update.call_args[0][0]
    assert "updated_at" in update_payload


def test_update_category_missing_row(mock_supabase):
    chain = mock_supabase.table.return_value.update.return_value.eq.return_value
    chain.execute.return_value = _response([])

    assert update_conversation_category("conv-404", "risk") is None
