"""
Unit tests for tool declarations and dispatch.

Dispatch tests run against a real OmiClient whose HTTP layer is faked, so
they cover argument validation, the facade call, the HTTP request and the
text returned to the host in one pass.
"""

import json
import pytest
import requests
from unittest.mock import MagicMock

from omi_mcp.error_reporting import ErrorReporter
from omi_mcp.tools import (
    ToolDispatcher, ToolValidationError, TOOL_SPECS, TOOLS_BY_NAME,
    CreateActionItemRequest, UpdateMemoryRequest, ListRequest, AddMessageRequest
)
from conftest import make_response, last_call


@pytest.fixture
def dispatcher(client):
    return ToolDispatcher(client, error_reporter=ErrorReporter())


class TestToolSpecs:
    """Test tool declarations and their input schemas."""

    def test_tool_names_are_unique(self):
        assert len(TOOLS_BY_NAME) == len(TOOL_SPECS)

    def test_core_tools_are_declared(self):
        for name in ('get-memories', 'create-memory', 'get-action-items',
                     'create-action-item', 'update-action-item', 'get-conversations'):
            assert name in TOOLS_BY_NAME

    @pytest.mark.parametrize("name, required", [
        ('get-memories', []),
        ('create-memory', ['content']),
        ('create-action-item', ['title']),
        ('update-action-item', ['action_item_id']),
        ('create-conversation', ['participants']),
        ('add-message', ['conversation_id', 'role', 'content']),
        ('get-memories-by-type', ['type']),
        ('search-conversations', ['query']),
        ('get-rate-limit-status', []),
    ])
    def test_required_arguments(self, name, required):
        spec = TOOLS_BY_NAME[name]
        assert spec.required_arguments() == required
        assert spec.input_schema.get('required', []) == required

    def test_every_required_argument_is_a_schema_property(self):
        for spec in TOOL_SPECS:
            schema = spec.input_schema
            assert schema['type'] == 'object'
            for name in spec.required_arguments():
                assert name in schema['properties'], f"{spec.name} misses {name}"

    def test_every_tool_has_a_handler(self):
        dispatcher = ToolDispatcher(MagicMock())
        for spec in TOOL_SPECS:
            assert callable(getattr(dispatcher, f"_handle_{spec.handler}"))

    def test_list_tools(self):
        assert ToolDispatcher(MagicMock()).list_tools() == TOOL_SPECS


class TestToolRequests:
    """Test building request objects from raw arguments."""

    def test_missing_required_argument(self):
        with pytest.raises(ToolValidationError) as exc_info:
            CreateActionItemRequest.from_arguments({'description': 'no title'})
        assert str(exc_info.value) == "Missing required argument: title"
        assert exc_info.value.field_name == 'title'

    def test_empty_string_counts_as_missing(self):
        with pytest.raises(ToolValidationError):
            CreateActionItemRequest.from_arguments({'title': ''})

    def test_none_arguments(self):
        request = ListRequest.from_arguments(None)
        assert request.params() == {'limit': None, 'offset': None, 'order': None}

    def test_unknown_arguments_are_ignored(self):
        request = CreateActionItemRequest.from_arguments({'title': 'Pay rent', 'priority': 'high'})
        assert request.payload() == {'title': 'Pay rent'}

    def test_payload_excludes_id_and_unset_fields(self):
        request = UpdateMemoryRequest.from_arguments({'memory_id': 'm1', 'content': 'new'})
        assert request.payload() == {'content': 'new'}

    def test_invalid_order(self):
        with pytest.raises(ToolValidationError) as exc_info:
            ListRequest.from_arguments({'order': 'sideways'})
        assert "order" in str(exc_info.value)

    def test_invalid_role(self):
        with pytest.raises(ToolValidationError) as exc_info:
            AddMessageRequest.from_arguments({'conversation_id': 'c1', 'role': 'robot', 'content': 'x'})
        assert "robot" in str(exc_info.value)

    def test_message_payload_keeps_conversation_id(self):
        request = AddMessageRequest.from_arguments({'conversation_id': 'c1', 'role': 'user', 'content': 'hi'})
        assert request.payload() == {'conversation_id': 'c1', 'role': 'user', 'content': 'hi'}


class TestToolDispatcher:
    """Test end-to-end dispatch of tool calls."""

    @pytest.mark.asyncio
    async def test_create_action_item(self, dispatcher, client, respond):
        respond(make_response(201, {'id': 'a1', 'title': 'Pay rent', 'status': 'pending'}))

        result = await dispatcher.dispatch('create-action-item', {'title': 'Pay rent'})

        method, url, kwargs = last_call(client)
        assert method == 'POST'
        assert url == "https://api.omi.me/v1/user/action-items"
        assert kwargs['json'] == {'title': 'Pay rent'}
        assert result.is_error is False
        body = json.loads(result.text)
        assert body['id'] == 'a1'
        assert body['status'] == 'pending'

    @pytest.mark.asyncio
    async def test_success_text_is_indented_json(self, dispatcher, respond):
        respond(make_response(200, [{'id': 'm1', 'content': 'café'}]))
        result = await dispatcher.dispatch('get-memories', {})
        assert result.text == json.dumps({'memories': [{'id': 'm1', 'content': 'café'}], 'total': 1},
                                         indent=2, ensure_ascii=False)

    @pytest.mark.asyncio
    async def test_list_arguments_are_passed_through(self, dispatcher, client):
        await dispatcher.dispatch('get-conversations', {'limit': 10, 'order': 'asc'})
        _, url, kwargs = last_call(client)
        assert url.endswith("/user/conversations")
        assert kwargs['params'] == {'limit': 10, 'order': 'asc'}

    @pytest.mark.asyncio
    async def test_missing_argument_makes_no_request(self, dispatcher, client):
        result = await dispatcher.dispatch('create-memory', {})
        assert result.is_error is True
        assert result.text == "Error: Missing required argument: content"
        client.session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_status_makes_no_request(self, dispatcher, client):
        result = await dispatcher.dispatch('update-action-item', {'action_item_id': 'a1', 'status': 'done'})
        assert result.is_error is True
        assert result.text.startswith("Error: Invalid value for status")
        client.session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_tool(self, dispatcher, client):
        result = await dispatcher.dispatch('make-coffee', {})
        assert result.is_error is True
        assert result.text == "Unknown tool: make-coffee"
        client.session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_api_error_becomes_error_text(self, dispatcher, respond):
        respond(make_response(401))
        result = await dispatcher.dispatch('get-memories', {})
        assert result.is_error is True
        assert result.text == "Error: Unauthorized: Invalid API token"

    @pytest.mark.asyncio
    async def test_rate_limited_error_text(self, dispatcher, respond):
        respond(make_response(429, headers={'retry-after': '30'}))
        result = await dispatcher.dispatch('get-action-items', {})
        assert result.text == "Error: Rate limited. Retry after 30 seconds"

    @pytest.mark.asyncio
    async def test_transport_error_becomes_error_text(self, dispatcher, client):
        client.session.request.side_effect = requests.ConnectionError("connection refused")
        result = await dispatcher.dispatch('get-memory', {'memory_id': 'm1'})
        assert result.is_error is True
        assert result.text == "Error: connection refused"

    @pytest.mark.asyncio
    async def test_errors_are_reported(self, client, respond):
        reporter = ErrorReporter()
        dispatcher = ToolDispatcher(client, error_reporter=reporter)
        respond(make_response(500))

        await dispatcher.dispatch('get-memories', {})

        summary = reporter.get_error_summary()
        assert summary['total_errors'] == 1
        assert summary['error_types'] == {'ServerError': 1}

    @pytest.mark.asyncio
    async def test_delete_returns_confirmation(self, dispatcher, client, respond):
        respond(make_response(204))
        result = await dispatcher.dispatch('delete-conversation', {'conversation_id': 'c1'})
        method, url, _ = last_call(client)
        assert method == 'DELETE'
        assert url.endswith("/user/conversations/c1")
        assert json.loads(result.text) == {'deleted': True, 'id': 'c1'}

    @pytest.mark.asyncio
    async def test_complete_action_item(self, dispatcher, client, respond):
        respond(make_response(200, {'id': 'a1', 'status': 'completed'}))
        result = await dispatcher.dispatch('complete-action-item', {'action_item_id': 'a1'})
        method, url, kwargs = last_call(client)
        assert method == 'PATCH'
        assert url.endswith("/user/action-items/a1")
        assert kwargs['json'] == {'status': 'completed'}
        assert json.loads(result.text)['status'] == 'completed'

    @pytest.mark.asyncio
    async def test_add_message(self, dispatcher, client, respond):
        respond(make_response(201, {'id': 'msg1'}))
        await dispatcher.dispatch('add-message', {'conversation_id': 'c1', 'role': 'user', 'content': 'hi'})
        method, url, kwargs = last_call(client)
        assert (method, url) == ('POST', "https://api.omi.me/v1/messages")
        assert kwargs['json'] == {'conversation_id': 'c1', 'role': 'user', 'content': 'hi'}

    @pytest.mark.asyncio
    async def test_search_memories(self, dispatcher, respond):
        respond(make_response(200, {'data': [
            {'id': 'm1', 'content': 'I like coffee'},
            {'id': 'm2', 'content': 'Tea'},
        ]}))
        result = await dispatcher.dispatch('search-memories', {'query': 'COFFEE'})
        assert [m['id'] for m in json.loads(result.text)] == ['m1']

    @pytest.mark.asyncio
    async def test_rate_limit_status_tool(self, dispatcher, client, respond):
        respond(make_response(200, [], {'x-ratelimit-remaining': '7', 'x-ratelimit-reset': '1700000000'}))
        await dispatcher.dispatch('get-memories', {})
        client.session.request.reset_mock()

        result = await dispatcher.dispatch('get-rate-limit-status', {})

        assert json.loads(result.text) == {'remaining': 7, 'reset_at': 1700000000}
        client.session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_update_reply_succeeds(self, dispatcher, respond):
        respond(make_response(204))
        result = await dispatcher.dispatch('update-memory', {'memory_id': 'm1', 'content': 'x'})
        assert result.is_error is False
        assert json.loads(result.text) is None

    @pytest.mark.asyncio
    async def test_empty_create_reply_succeeds(self, dispatcher, respond):
        respond(make_response(201))
        result = await dispatcher.dispatch('add-message', {'conversation_id': 'c1', 'role': 'user', 'content': 'hi'})
        assert result.is_error is False
        assert json.loads(result.text) is None

    @pytest.mark.asyncio
    async def test_non_string_query_is_rejected(self, dispatcher, client):
        result = await dispatcher.dispatch('search-memories', {'query': 42})
        assert result.is_error is True
        assert result.text == "Error: Argument query must be a string"
        client.session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_string_conversation_query_is_rejected(self, dispatcher, client):
        result = await dispatcher.dispatch('search-conversations', {'query': ['a']})
        assert result.text == "Error: Argument query must be a string"
        client.session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_skips_non_string_fields(self, dispatcher, respond):
        respond(make_response(200, [
            {'id': 'm1', 'content': 'coffee', 'type': 7},
            {'id': 'm2', 'content': None, 'type': 'coffee-note'},
        ]))
        result = await dispatcher.dispatch('search-memories', {'query': 'coffee'})
        assert result.is_error is False
        assert [m['id'] for m in json.loads(result.text)] == ['m1', 'm2']
