import json
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

LOG_JSON = os.getenv("LOG_JSON", "1") == "1"

COST_IN = float(os.getenv("COST_PER_1K_INPUT_USD", "0.0"))
COST_OUT = float(os.getenv("COST_PER_1K_OUTPUT_USD", "0.0"))

SERVICE = os.getenv("APP_NAME", "mathparenting-gateway")

def now_ms() -> int:
    return int(time.time() * 1000)

def estimate_cost_usd(usage: Optional[Dict[str, Any]]) -> float:
    u = normalize_usage(usage or {})
    inp = u.get("input_tokens", 0)
    out = u.get("output_tokens", 0)

    return (inp / 1000.0) * COST_IN + (out / 1000.0) * COST_OUT

def log(event: str, **fields):
    payload = {"ts_ms": now_ms(), "service": SERVICE, "event": event, **fields}
    if LOG_JSON:
        print(json.dumps(payload, ensure_ascii=False, default=str), flush=True)
    else:
        print(payload, flush=True)

def log_error(event: str, err: BaseException, **fields):
    log(event, error_type=type(err).__name__, error=str(err)[:500], **fields)

def normalize_usage(usage: dict | None) -> dict:
    """
    usage 포멧을 통일:
        {"input_tokens": int, "output_tokens": int, "total_tokens": int}
    """
    if not usage:
        return {}

    # langchain usage_metadata / OpenAI usage 둘 다 흡수
    inp = usage.get("input_tokens") or usage.get("prompt_tokens") or 0
    out = usage.get("output_tokens") or usage.get("completion_tokens") or 0
    total = usage.get("total_tokens") or (inp + out)

    return {
        "input_tokens": int(inp),
        "output_tokens": int(out),
        "total_tokens": int(total),
    }

def usage_fields(usage: dict | None, model: str | None = None) -> dict:
    """chat_done / model_call 이벤트에 붙는 usage, cost (모델 호출이 없었으면 model 생략)"""
    u = normalize_usage(usage)
    fields = {"usage": u, "cost_usd": round(estimate_cost_usd(u), 6)}
    if model:
        fields["model"] = model
    return fields

@dataclass
class Timer:
    t0: float

    @classmethod
    def start(cls):
        return cls(time.perf_counter())

    def ms(self) -> int:
        return int((time.perf_counter() - self.t0) * 1000)

def ensure_request_id(rid: str | None) -> str:
    return rid or str(uuid.uuid4())
