from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional

class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str

class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # 비어 있으면 gateway에서 400으로 거절 (422 대신)
    messages: List[Message] = Field(default_factory=list)
    idempotency_key: Optional[str] = Field(default=None, alias="idempotencyKey")
    request_id: Optional[str] = None

class ChatResponse(BaseModel):
    reply: str
    request_id: str
    route: str
    cached: bool = False
    latency_ms: int

class ErrorResponse(BaseModel):
    error: str
    request_id: Optional[str] = None
