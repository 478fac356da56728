from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class MentionedClass(BaseModel):
    id: str | None = None
    name: str


class MentionContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_mentions: bool = Field(default=False, alias="hasMentions")
    mentioned_classes: list[MentionedClass] = Field(default_factory=list, alias="mentionedClasses")


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1, max_length=1000)
    class_id: str | None = Field(default=None, alias="classId")
    class_ids: list[str] = Field(default_factory=list, alias="classIds")
    conversation_history: list[ConversationMessage] = Field(
        default_factory=list, alias="conversationHistory"
    )
    mention_context: MentionContext | None = Field(default=None, alias="mentionContext")

    def target_class_ids(self) -> list[str]:
        if self.class_ids:
            return list(self.class_ids)
        return [self.class_id] if self.class_id else []


class ChatResponse(BaseModel):
    answer: str
