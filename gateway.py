from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence

from langchain_core.messages import BaseMessage

import followup
from errors import ChatValidationError, MalformedModelOutput, UpstreamError
from idempotency import IdempotencyCache
from intent import Intent, IntentClassifier
from limits import GLOBAL_SEM, QUEUE_TIMEOUT_SEC, model_slot
from llm_adapter import ModelReply, build_messages
from metrics_prom import CACHE_LOOKUPS, MODEL_CALLS, record_usage
from normalizer import normalize
from obs_log import estimate_cost_usd, log
from schemas import ChatRequest, Message

FALLBACK_REPLY = "Sorry, I could not generate a response. Please try again."

ROUTE_CACHE = "cache"
ROUTE_MODEL = "model"

FOLLOWUP_OVERRIDABLE = (Intent.SHORT_NUDGE, Intent.NON_MATH_REDIRECT)


class CompletionModel(Protocol):
    async def invoke(self, messages: list[BaseMessage], request_id: Optional[str] = None) -> ModelReply: ...


@dataclass
class GatewayResult:
    reply: str
    route: str
    cached: bool = False
    followup: bool = False
    fallback: bool = False
    usage: Dict[str, Any] = field(default_factory=dict)


def last_user_text(messages: Sequence[Message]) -> Optional[str]:
    for m in reversed(messages):
        if m.role == "user":
            return m.content.strip()
    return None


class ChatGateway:
    """
    요청 1건 처리 파이프라인:
        검증 -> idempotency 캐시 -> 의도 분류(정해진 답변) -> follow-up hint -> 모델 -> 후처리
    캐시는 프로세스당 하나를 만들어 주입받는다.
    """

    def __init__(
        self,
        cache: IdempotencyCache,
        model: CompletionModel,
        classifier: Optional[IntentClassifier] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
        queue_timeout_sec: float = QUEUE_TIMEOUT_SEC,
    ):
        self.cache = cache
        self.model = model
        self.classifier = classifier or IntentClassifier()
        self.semaphore = semaphore or GLOBAL_SEM
        self.queue_timeout_sec = queue_timeout_sec

    async def handle(self, req: ChatRequest, request_id: Optional[str] = None) -> GatewayResult:
        if not req.messages:
            raise ChatValidationError("No messages provided.")

        last_user = last_user_text(req.messages)
        if last_user is None:
            raise ChatValidationError("At least one user message is required.")

        key = (req.idempotency_key or "").strip() or None

        # 같은 제출의 재시도면 이전 답변을 그대로 돌려준다
        if key:
            hit = await self.cache.get(key)
            CACHE_LOOKUPS.labels(result="hit" if hit is not None else "miss").inc()
            if hit is not None:
                return GatewayResult(reply=hit, route=ROUTE_CACHE, cached=True)

        cls = self.classifier.classify(last_user)

        # 앞 대화를 가리키는 짧은 후속 질문만 리다이렉트 대신 모델로 보낸다
        # (질문 단서만 있는 잡담은 그대로 리다이렉트)
        hint = None
        if cls.proceed:
            hint = followup.resolve(req.messages, last_user)
        elif cls.intent in FOLLOWUP_OVERRIDABLE and followup.has_referential_cue(last_user):
            hint = followup.resolve(req.messages, last_user)

        if not cls.proceed and hint is None:
            await self._remember(key, cls.reply)
            return GatewayResult(reply=cls.reply, route=cls.intent.value)

        messages = build_messages(req.messages, hint)

        raw, usage, fallback = await self._complete(messages, request_id)
        reply = normalize(raw)

        # 사과 문구는 캐시하지 않음
        if not fallback:
            await self._remember(key, reply)

        return GatewayResult(
            reply=reply,
            route=ROUTE_MODEL,
            followup=hint is not None,
            fallback=fallback,
            usage=usage,
        )

    async def _remember(self, key: Optional[str], reply: str) -> None:
        if key:
            await self.cache.put(key, reply)

    async def _complete(self, messages: list[BaseMessage], request_id: Optional[str]) -> tuple[str, Dict[str, Any], bool]:
        async with model_slot(self.semaphore, self.queue_timeout_sec):
            try:
                out = await self.model.invoke(messages, request_id=request_id)
            except MalformedModelOutput as e:
                MODEL_CALLS.labels(outcome="malformed").inc()
                log("model_output_malformed", request_id=request_id, reason=str(e))
                return FALLBACK_REPLY, {}, True
            except UpstreamError:
                MODEL_CALLS.labels(outcome="upstream_error").inc()
                raise

        MODEL_CALLS.labels(outcome="ok").inc()
        record_usage(out.usage, estimate_cost_usd(out.usage))
        return out.text, out.usage, False
