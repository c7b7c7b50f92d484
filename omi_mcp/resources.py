"""
Resource facades over the Omi.me client.

Each facade delegates to exactly one OmiClient call and applies local,
stateless reshaping: renaming list results, filtering a fetched page and
small status helpers. Errors from the client propagate unchanged.

Search and filter helpers work on the single page returned by one list call;
they are not server-side searches.
"""

import logging
from typing import Dict, Any, List, Optional, Mapping

from omi_mcp.client import OmiClient

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 50

def _contains(value: Optional[str], lowered_query: str) -> bool:
    return isinstance(value, str) and lowered_query in value.lower()

class MemoriesResource:
    """Memory operations."""

    def __init__(self, client: OmiClient):
        self.client = client

    def get_memories(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        result = self.client.get_memories(params)
        return {'memories': result['data'], 'total': result['total']}

    def get_memory(self, memory_id: str) -> Dict[str, Any]:
        return self.client.get_memory(memory_id)

    def create_memory(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.create_memory(request)

    def update_memory(self, memory_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self.client.update_memory(memory_id, data)

    def delete_memory(self, memory_id: str) -> None:
        self.client.delete_memory(memory_id)

    def search_memories(self, query: str) -> List[Dict[str, Any]]:
        """
        Case-insensitive substring search over memory content and type.

        Only the first SEARCH_PAGE_SIZE memories are considered.
        """
        result = self.client.get_memories({'limit': SEARCH_PAGE_SIZE})
        lowered_query = query.lower()
        matches = [
            memory for memory in result['data']
            if _contains(memory.get('content'), lowered_query)
            or _contains(memory.get('type'), lowered_query)
        ]
        logger.debug(f"Memory search for '{query}' matched {len(matches)}/{result['total']}")
        return matches

    def get_memories_by_type(self,
                             memory_type: str,
                             params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        result = self.client.get_memories(params)
        return [memory for memory in result['data'] if memory.get('type') == memory_type]

class ActionItemsResource:
    """Action item (task) operations."""

    def __init__(self, client: OmiClient):
        self.client = client

    def get_action_items(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        result = self.client.get_action_items(params)
        return {'action_items': result['data'], 'total': result['total']}

    def get_action_item(self, item_id: str) -> Dict[str, Any]:
        return self.client.get_action_item(item_id)

    def create_action_item(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.create_action_item(request)

    def update_action_item(self, item_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self.client.update_action_item(item_id, data)

    def delete_action_item(self, item_id: str) -> None:
        self.client.delete_action_item(item_id)

    def _filter_by_status(self,
                          status: str,
                          params: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        result = self.client.get_action_items(params)
        return [item for item in result['data'] if item.get('status') == status]

    def get_pending_action_items(self, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        return self._filter_by_status('pending', params)

    def get_completed_action_items(self, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        return self._filter_by_status('completed', params)

    def mark_action_item_complete(self, item_id: str) -> Dict[str, Any]:
        return self.client.update_action_item(item_id, {'status': 'completed'})

    def mark_action_item_pending(self, item_id: str) -> Dict[str, Any]:
        return self.client.update_action_item(item_id, {'status': 'pending'})

class ConversationsResource:
    """Conversation and message operations."""

    def __init__(self, client: OmiClient):
        self.client = client

    def get_conversations(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        result = self.client.get_conversations(params)
        return {'conversations': result['data'], 'total': result['total']}

    def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        return self.client.get_conversation(conversation_id)

    def create_conversation(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.create_conversation(request)

    def update_conversation(self, conversation_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return self.client.update_conversation(conversation_id, data)

    def delete_conversation(self, conversation_id: str) -> None:
        self.client.delete_conversation(conversation_id)

    def get_conversation_messages(self, conversation_id: str) -> List[Dict[str, Any]]:
        conversation = self.client.get_conversation(conversation_id) or {}
        return conversation.get('messages') or []

    def add_message_to_conversation(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.client.create_message(request)

    def search_conversations(self,
                             query: str,
                             params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Case-insensitive match on the title or any participant of one fetched page."""
        result = self.client.get_conversations(params)
        lowered_query = query.lower()
        return [
            conversation for conversation in result['data']
            if _contains(conversation.get('title'), lowered_query)
            or any(_contains(p, lowered_query) for p in conversation.get('participants') or [])
        ]
