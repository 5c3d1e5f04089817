from enum import Enum
from pydantic import BaseModel, field_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"


class Message(BaseModel):
    role: MessageRole
    content: str

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


def build_messages(
    system_prompt: str,
    history: list[Message],
    user_message: str,
) -> list[dict]:
    """Lay out the instruction, the prior turns and the new user message
    in the order the chat-completions API expects."""
    return [
        Message(role=MessageRole.SYSTEM, content=system_prompt).model_dump(),
        *[m.model_dump() for m in history],
        Message(role=MessageRole.USER, content=user_message).model_dump(),
    ]
