"""
Utility helpers for the EventBus.
"""

import uuid


def new_msg_id() -> str:
    """
    Generate a globally unique event ID.

    Returns:
        str: UUID string for a new event.
    """
    return str(uuid.uuid4())
