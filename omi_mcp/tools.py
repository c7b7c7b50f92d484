"""
Tool declarations and dispatch for the Omi MCP integration.

Every tool has a request dataclass whose fields without defaults are the
tool's required arguments. The dispatcher builds the request from the raw
arguments, calls one facade operation in a worker thread and turns the
outcome into a ToolResult. Failures never escape dispatch().
"""

import json
import asyncio
import logging
from dataclasses import dataclass, fields, MISSING
from typing import Dict, Any, List, Optional, Callable

from omi_mcp.client import OmiClient, ACTION_ITEM_STATUSES, MESSAGE_ROLES, SORT_ORDERS
from omi_mcp.resources import MemoriesResource, ActionItemsResource, ConversationsResource
from omi_mcp.error_reporting import ErrorReporter

logger = logging.getLogger(__name__)

class ToolValidationError(Exception):
    """Raised when tool arguments are missing or invalid."""

    def __init__(self, field_name: str, message: Optional[str] = None):
        super().__init__(message or f"Missing required argument: {field_name}")
        self.field_name = field_name

@dataclass
class ToolResult:
    """Text payload returned to the host for one tool call."""
    text: str
    is_error: bool = False

# Request types

def _is_required(field) -> bool:
    return field.default is MISSING and field.default_factory is MISSING

@dataclass
class ToolRequest:
    """Base class for tool requests."""

    # Fields holding the entity id in the URL rather than in the body.
    id_fields = ()

    @classmethod
    def from_arguments(cls, arguments: Optional[Dict[str, Any]]) -> 'ToolRequest':
        """
        Build a request from raw tool arguments.

        Unknown arguments are ignored. None counts as absent.

        Raises:
            ToolValidationError: If a required argument is missing or a
                value is outside its allowed set.
        """
        arguments = arguments or {}
        values = {}
        for field in fields(cls):
            value = arguments.get(field.name)
            if value is None or (value == '' and _is_required(field)):
                if _is_required(field):
                    raise ToolValidationError(field.name)
                continue
            values[field.name] = value

        request = cls(**values)
        request.validate()
        return request

    def validate(self) -> None:
        pass

    def payload(self) -> Dict[str, Any]:
        """Fields that were provided, excluding URL ids."""
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if field.name not in self.id_fields and getattr(self, field.name) is not None
        }

def _check_choice(field_name: str, value: Optional[str], choices) -> None:
    if value is not None and value not in choices:
        raise ToolValidationError(
            field_name,
            f"Invalid value for {field_name}: '{value}' (expected one of: {', '.join(choices)})"
        )

def _check_text(field_name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ToolValidationError(field_name, f"Argument {field_name} must be a string")

class ListParamsMixin:
    """Pass-through paging parameters for list calls."""

    def validate(self) -> None:
        _check_choice('order', self.order, SORT_ORDERS)

    def params(self) -> Dict[str, Any]:
        return {'limit': self.limit, 'offset': self.offset, 'order': self.order}

@dataclass
class ListRequest(ListParamsMixin, ToolRequest):
    limit: Optional[int] = None
    offset: Optional[int] = None
    order: Optional[str] = None

@dataclass
class EmptyRequest(ToolRequest):
    pass

@dataclass
class MemoryIdRequest(ToolRequest):
    memory_id: str

@dataclass
class CreateMemoryRequest(ToolRequest):
    content: str
    type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

@dataclass
class UpdateMemoryRequest(ToolRequest):
    id_fields = ('memory_id',)

    memory_id: str
    content: Optional[str] = None
    type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

@dataclass
class SearchMemoriesRequest(ToolRequest):
    query: str

    def validate(self) -> None:
        _check_text('query', self.query)

@dataclass
class MemoriesByTypeRequest(ListParamsMixin, ToolRequest):
    type: str
    limit: Optional[int] = None
    offset: Optional[int] = None
    order: Optional[str] = None

@dataclass
class ActionItemIdRequest(ToolRequest):
    action_item_id: str

@dataclass
class CreateActionItemRequest(ToolRequest):
    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

@dataclass
class UpdateActionItemRequest(ToolRequest):
    id_fields = ('action_item_id',)

    action_item_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def validate(self) -> None:
        _check_choice('status', self.status, ACTION_ITEM_STATUSES)

@dataclass
class ConversationIdRequest(ToolRequest):
    conversation_id: str

@dataclass
class CreateConversationRequest(ToolRequest):
    participants: List[str]
    title: Optional[str] = None
    initial_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def validate(self) -> None:
        if not isinstance(self.participants, list):
            raise ToolValidationError('participants', "Argument participants must be a list of strings")

@dataclass
class UpdateConversationRequest(ToolRequest):
    id_fields = ('conversation_id',)

    conversation_id: str
    title: Optional[str] = None
    participants: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None

@dataclass
class AddMessageRequest(ToolRequest):
    conversation_id: str
    role: str
    content: str
    metadata: Optional[Dict[str, Any]] = None

    def validate(self) -> None:
        _check_choice('role', self.role, MESSAGE_ROLES)

@dataclass
class SearchConversationsRequest(ListParamsMixin, ToolRequest):
    query: str
    limit: Optional[int] = None
    offset: Optional[int] = None
    order: Optional[str] = None

    def validate(self) -> None:
        _check_text('query', self.query)
        super().validate()

# Tool declarations

@dataclass
class ToolSpec:
    name: str
    description: str
    request_type: type
    handler: str
    properties: Dict[str, Any]

    @property
    def input_schema(self) -> Dict[str, Any]:
        schema = {'type': 'object', 'properties': self.properties}
        required = self.required_arguments()
        if required:
            schema['required'] = required
        return schema

    def required_arguments(self) -> List[str]:
        return [f.name for f in fields(self.request_type) if _is_required(f)]

LIST_PROPERTIES = {
    'limit': {'type': 'number', 'description': 'Maximum number of results (default: 50)'},
    'offset': {'type': 'number', 'description': 'Number of results to skip'},
    'order': {'type': 'string', 'enum': list(SORT_ORDERS), 'description': 'Sort order'},
}
METADATA_PROPERTY = {'metadata': {'type': 'object', 'description': 'Additional metadata'}}

def _id_property(name: str, entity: str) -> Dict[str, Any]:
    return {name: {'type': 'string', 'description': f"{entity} identifier"}}

MEMORY_PROPERTIES = {
    'content': {'type': 'string', 'description': 'The memory content'},
    'type': {'type': 'string', 'description': 'Memory type (e.g., "fact", "preference")'},
    **METADATA_PROPERTY,
}
ACTION_ITEM_PROPERTIES = {
    'title': {'type': 'string', 'description': 'Task title'},
    'description': {'type': 'string', 'description': 'Task description'},
    'due_date': {'type': 'string', 'description': 'Due date (ISO 8601 format)'},
    **METADATA_PROPERTY,
}
CONVERSATION_PROPERTIES = {
    'title': {'type': 'string', 'description': 'Conversation title'},
    'participants': {
        'type': 'array',
        'items': {'type': 'string'},
        'description': 'List of participant identifiers',
    },
    **METADATA_PROPERTY,
}

TOOL_SPECS = [
    # Memories
    ToolSpec('get-memories', 'Retrieve a list of memories from Omi.me',
             ListRequest, 'get_memories', LIST_PROPERTIES),
    ToolSpec('get-memory', 'Retrieve a single memory by id',
             MemoryIdRequest, 'get_memory', _id_property('memory_id', 'Memory')),
    ToolSpec('create-memory', 'Create a new memory in Omi.me',
             CreateMemoryRequest, 'create_memory', MEMORY_PROPERTIES),
    ToolSpec('update-memory', 'Update fields of an existing memory',
             UpdateMemoryRequest, 'update_memory',
             {**_id_property('memory_id', 'Memory'), **MEMORY_PROPERTIES}),
    ToolSpec('delete-memory', 'Delete a memory',
             MemoryIdRequest, 'delete_memory', _id_property('memory_id', 'Memory')),
    ToolSpec('search-memories', 'Search recent memories by content or type (case-insensitive)',
             SearchMemoriesRequest, 'search_memories',
             {'query': {'type': 'string', 'description': 'Text to look for'}}),
    ToolSpec('get-memories-by-type', 'Retrieve memories of one type',
             MemoriesByTypeRequest, 'get_memories_by_type',
             {'type': MEMORY_PROPERTIES['type'], **LIST_PROPERTIES}),
    # Action items
    ToolSpec('get-action-items', 'Retrieve action items (tasks) from Omi.me',
             ListRequest, 'get_action_items', LIST_PROPERTIES),
    ToolSpec('get-action-item', 'Retrieve a single action item by id',
             ActionItemIdRequest, 'get_action_item', _id_property('action_item_id', 'Action item')),
    ToolSpec('create-action-item', 'Create a new action item (task) in Omi.me',
             CreateActionItemRequest, 'create_action_item', ACTION_ITEM_PROPERTIES),
    ToolSpec('update-action-item', 'Update fields of an existing action item',
             UpdateActionItemRequest, 'update_action_item',
             {**_id_property('action_item_id', 'Action item'), **ACTION_ITEM_PROPERTIES,
              'status': {'type': 'string', 'enum': list(ACTION_ITEM_STATUSES), 'description': 'Task status'}}),
    ToolSpec('delete-action-item', 'Delete an action item',
             ActionItemIdRequest, 'delete_action_item', _id_property('action_item_id', 'Action item')),
    ToolSpec('get-pending-action-items', 'Retrieve pending action items',
             ListRequest, 'get_pending_action_items', LIST_PROPERTIES),
    ToolSpec('get-completed-action-items', 'Retrieve completed action items',
             ListRequest, 'get_completed_action_items', LIST_PROPERTIES),
    ToolSpec('complete-action-item', 'Mark an action item as completed',
             ActionItemIdRequest, 'complete_action_item', _id_property('action_item_id', 'Action item')),
    ToolSpec('reopen-action-item', 'Mark an action item as pending again',
             ActionItemIdRequest, 'reopen_action_item', _id_property('action_item_id', 'Action item')),
    # Conversations
    ToolSpec('get-conversations', 'Retrieve conversations from Omi.me',
             ListRequest, 'get_conversations', LIST_PROPERTIES),
    ToolSpec('get-conversation', 'Retrieve a single conversation by id',
             ConversationIdRequest, 'get_conversation', _id_property('conversation_id', 'Conversation')),
    ToolSpec('create-conversation', 'Create a new conversation in Omi.me',
             CreateConversationRequest, 'create_conversation',
             {**CONVERSATION_PROPERTIES,
              'initial_message': {'type': 'string', 'description': 'Initial message content'}}),
    ToolSpec('update-conversation', 'Update fields of an existing conversation',
             UpdateConversationRequest, 'update_conversation',
             {**_id_property('conversation_id', 'Conversation'), **CONVERSATION_PROPERTIES}),
    ToolSpec('delete-conversation', 'Delete a conversation',
             ConversationIdRequest, 'delete_conversation', _id_property('conversation_id', 'Conversation')),
    ToolSpec('get-conversation-messages', 'Retrieve the messages of a conversation',
             ConversationIdRequest, 'get_conversation_messages',
             _id_property('conversation_id', 'Conversation')),
    ToolSpec('add-message', 'Add a message to a conversation',
             AddMessageRequest, 'add_message',
             {**_id_property('conversation_id', 'Conversation'),
              'role': {'type': 'string', 'enum': list(MESSAGE_ROLES), 'description': 'Message author role'},
              'content': {'type': 'string', 'description': 'Message content'},
              **METADATA_PROPERTY}),
    ToolSpec('search-conversations', 'Search conversations by title or participant (case-insensitive)',
             SearchConversationsRequest, 'search_conversations',
             {'query': {'type': 'string', 'description': 'Text to look for'}, **LIST_PROPERTIES}),
    # Diagnostics
    ToolSpec('get-rate-limit-status', 'Show the last rate-limit state reported by Omi.me',
             EmptyRequest, 'get_rate_limit_status', {}),
]

TOOLS_BY_NAME = {spec.name: spec for spec in TOOL_SPECS}

class ToolDispatcher:
    """
    Routes tool calls to the resource facades.

    Each call invokes exactly one facade operation. Every failure, including
    argument validation, is converted into an error ToolResult.
    """

    def __init__(self, client: OmiClient, error_reporter: Optional[ErrorReporter] = None):
        self.client = client
        self.memories = MemoriesResource(client)
        self.action_items = ActionItemsResource(client)
        self.conversations = ConversationsResource(client)
        self.error_reporter = error_reporter or ErrorReporter()

    def list_tools(self) -> List[ToolSpec]:
        return list(TOOL_SPECS)

    async def dispatch(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """
        Execute one tool call.

        Returns:
            ToolResult with pretty-printed JSON on success, or an
            ``Error: <message>`` text flagged as an error.
        """
        spec = TOOLS_BY_NAME.get(name)
        if spec is None:
            logger.warning(f"Unknown tool requested: {name}")
            return ToolResult(f"Unknown tool: {name}", is_error=True)

        logger.info(f"Calling tool {name}")
        try:
            request = spec.request_type.from_arguments(arguments)
            handler: Callable[[ToolRequest], Any] = getattr(self, f"_handle_{spec.handler}")
            result = await asyncio.to_thread(handler, request)
        except Exception as e:
            return ToolResult(self.error_reporter.report_error(e, name, arguments), is_error=True)

        return ToolResult(json.dumps(result, indent=2, ensure_ascii=False))

    # Memories

    def _handle_get_memories(self, request: ListRequest):
        return self.memories.get_memories(request.params())

    def _handle_get_memory(self, request: MemoryIdRequest):
        return self.memories.get_memory(request.memory_id)

    def _handle_create_memory(self, request: CreateMemoryRequest):
        return self.memories.create_memory(request.payload())

    def _handle_update_memory(self, request: UpdateMemoryRequest):
        return self.memories.update_memory(request.memory_id, request.payload())

    def _handle_delete_memory(self, request: MemoryIdRequest):
        self.memories.delete_memory(request.memory_id)
        return {'deleted': True, 'id': request.memory_id}

    def _handle_search_memories(self, request: SearchMemoriesRequest):
        return self.memories.search_memories(request.query)

    def _handle_get_memories_by_type(self, request: MemoriesByTypeRequest):
        return self.memories.get_memories_by_type(request.type, request.params())

    # Action items

    def _handle_get_action_items(self, request: ListRequest):
        return self.action_items.get_action_items(request.params())

    def _handle_get_action_item(self, request: ActionItemIdRequest):
        return self.action_items.get_action_item(request.action_item_id)

    def _handle_create_action_item(self, request: CreateActionItemRequest):
        return self.action_items.create_action_item(request.payload())

    def _handle_update_action_item(self, request: UpdateActionItemRequest):
        return self.action_items.update_action_item(request.action_item_id, request.payload())

    def _handle_delete_action_item(self, request: ActionItemIdRequest):
        self.action_items.delete_action_item(request.action_item_id)
        return {'deleted': True, 'id': request.action_item_id}

    def _handle_get_pending_action_items(self, request: ListRequest):
        return self.action_items.get_pending_action_items(request.params())

    def _handle_get_completed_action_items(self, request: ListRequest):
        return self.action_items.get_completed_action_items(request.params())

    def _handle_complete_action_item(self, request: ActionItemIdRequest):
        return self.action_items.mark_action_item_complete(request.action_item_id)

    def _handle_reopen_action_item(self, request: ActionItemIdRequest):
        return self.action_items.mark_action_item_pending(request.action_item_id)

    # Conversations

    def _handle_get_conversations(self, request: ListRequest):
        return self.conversations.get_conversations(request.params())

    def _handle_get_conversation(self, request: ConversationIdRequest):
        return self.conversations.get_conversation(request.conversation_id)

    def _handle_create_conversation(self, request: CreateConversationRequest):
        return self.conversations.create_conversation(request.payload())

    def _handle_update_conversation(self, request: UpdateConversationRequest):
        return self.conversations.update_conversation(request.conversation_id, request.payload())

    def _handle_delete_conversation(self, request: ConversationIdRequest):
        self.conversations.delete_conversation(request.conversation_id)
        return {'deleted': True, 'id': request.conversation_id}

    def _handle_get_conversation_messages(self, request: ConversationIdRequest):
        return self.conversations.get_conversation_messages(request.conversation_id)

    def _handle_add_message(self, request: AddMessageRequest):
        return self.conversations.add_message_to_conversation(request.payload())

    def _handle_search_conversations(self, request: SearchConversationsRequest):
        return self.conversations.search_conversations(request.query, request.params())

    # Diagnostics

    def _handle_get_rate_limit_status(self, request: EmptyRequest):
        return self.client.get_rate_limit_status().to_dict()
