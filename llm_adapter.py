import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from errors import MalformedModelOutput, UpstreamError
from obs_log import log, normalize_usage, usage_fields
from limits import LLM_TIMEOUT_SEC, with_timeout
from schemas import Message

CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4.1")
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.4"))

SECTION_TITLES = (
    "Core Idea",
    "Household Demonstration",
    "The Math Behind It",
    "Step-by-Step Teaching Guide",
    "Curiosity Questions",
    "Real-Life Connection or Fun Fact",
    "Practice Together",
)

# 제목 없이 내용만 있어야 하는 두 섹션
CONTENT_ONLY_SECTIONS = ("Start", "Positive Close")

SYSTEM_PROMPT = (
    "You are MathParenting, a friendly helper speaking directly to the parent. "
    "Do not address the child. Do not ask for grade.\n\n"
    "Always use this structure and tone:\n"
    + "\n".join((CONTENT_ONLY_SECTIONS[0], *SECTION_TITLES, CONTENT_ONLY_SECTIONS[1]))
    + "\n\n"
    "Formatting rules:\n"
    '• Do NOT show the words "Start" or "Positive Close" anywhere. Those two sections must be '
    "content-only paragraphs without headings or labels.\n"
    "• For the middle sections, the exact titles must appear in bold (no numbers, no hyphens): "
    + ", ".join(f"**{t}**" for t in SECTION_TITLES)
    + ".\n"
    "• After the Practice Together content, leave a blank line and include a single bold positive "
    "message that celebrates effort.\n"
    "• Use simple language, short paragraphs, warm tone, and speak to the parent.\n"
    "• Use KaTeX delimiters recognized by remark-math: inline $ ... $ and display $$ ... $$.\n"
    "• Put every symbol or formula inside $ ... $ (for example, $y$, $x$, $f(x)$, $ f'(x) $, "
    "$ \\frac{dy}{dx} $).\n"
    '• Never write plain parentheses around variables or formulas (avoid "( y )", "( f(x) )").\n'
    "• If a follow-up is short and vague, assume it refers to the most recent topic in this "
    "conversation and give a brief, gentle clarification with one or two tiny examples, then offer "
    "a small practice prompt.\n\n"
    "If the question is not about math, kindly say you only help with math and invite them to share "
    "any math topic."
)

_ROLE_TO_MESSAGE = {
    "user": HumanMessage,
    "assistant": AIMessage,
}


@dataclass
class ModelReply:
    text: str
    usage: Dict[str, Any] = field(default_factory=dict)


def build_messages(history: Sequence[Message], context_hint: Optional[str] = None) -> List[BaseMessage]:
    """
    system prompt -> (context hint) -> history 순서.
    클라이언트가 보낸 system 메시지는 신뢰하지 않으므로 버린다.
    """
    msgs: List[BaseMessage] = [SystemMessage(content=SYSTEM_PROMPT)]
    if context_hint:
        msgs.append(SystemMessage(content=context_hint))

    for m in history:
        cls = _ROLE_TO_MESSAGE.get(m.role)
        if cls is None:
            continue
        msgs.append(cls(content=m.content))
    return msgs


def extract_text(content: Any) -> str:
    if isinstance(content, str):
        return content.strip()

    # 일부 모델은 content를 part 리스트로 돌려준다
    if isinstance(content, list):
        parts: List[str] = []
        for p in content:
            if isinstance(p, str):
                parts.append(p)
            elif isinstance(p, dict) and p.get("type", "text") == "text":
                parts.append(str(p.get("text") or ""))
        return "".join(parts).strip()

    raise MalformedModelOutput(f"unexpected content type: {type(content).__name__}")


class ModelAdapter:
    def __init__(self, model: str = CHAT_MODEL, temperature: float = CHAT_TEMPERATURE, timeout_sec: float = LLM_TIMEOUT_SEC):
        self.model = model
        self.temperature = temperature
        self.timeout_sec = timeout_sec
        self._llm: Optional[ChatOpenAI] = None

    def _client(self) -> ChatOpenAI:
        if self._llm is None:
            if not os.getenv("OPENAI_API_KEY"):
                raise UpstreamError("Missing OPENAI_API_KEY. Set it in the server environment.")
            # 재시도는 하지 않는다: 한 요청당 한 번만 호출
            self._llm = ChatOpenAI(model=self.model, temperature=self.temperature, max_retries=0)
        return self._llm

    async def invoke(self, messages: List[BaseMessage], request_id: Optional[str] = None) -> ModelReply:
        llm = self._client()
        try:
            response = await with_timeout(llm.ainvoke(messages), self.timeout_sec)
        except asyncio.TimeoutError as e:
            log("model_call", request_id=request_id, model=self.model, ok=False, error="timeout")
            raise UpstreamError(f"Model call timed out after {self.timeout_sec:g}s") from e
        except Exception as e:
            log("model_call", request_id=request_id, model=self.model, ok=False, error=type(e).__name__)
            raise UpstreamError(f"Model error: {e}") from e

        text = extract_text(getattr(response, "content", None))
        if not text:
            raise MalformedModelOutput("empty completion")

        usage = normalize_usage(getattr(response, "usage_metadata", None) or {})
        log("model_call", request_id=request_id, ok=True, **usage_fields(usage, self.model))
        return ModelReply(text=text, usage=usage)
