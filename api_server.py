import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from errors import GatewayError
from gateway import ROUTE_MODEL, ChatGateway
from idempotency import IDEMPOTENCY_BACKEND, IDEMPOTENCY_TTL_SEC, build_cache
from llm_adapter import CHAT_MODEL, ModelAdapter
from metrics_prom import REQ_COUNT, REQ_LATENCY_MS
from obs_log import Timer, ensure_request_id, log, log_error, usage_fields
from schemas import ChatRequest, ChatResponse, ErrorResponse

# 로깅 설정 (uvicorn 로그와 통합)
logger = logging.getLogger("uvicorn")

# 프로세스당 1번만 생성 (캐시는 요청 간 공유되는 유일한 상태)
GATEWAY = ChatGateway(cache=build_cache(), model=ModelAdapter())

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "LIFESPAN: Startup. model=%s idempotency=%s ttl=%ss",
        CHAT_MODEL, IDEMPOTENCY_BACKEND, IDEMPOTENCY_TTL_SEC,
    )
    yield
    logger.info("LIFESPAN: Shutdown initiated.")

app = FastAPI(title="MathParenting Chat Gateway", lifespan=lifespan)

def _error(status_code: int, message: str, request_id: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=message, request_id=request_id)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))

@app.exception_handler(RequestValidationError)
async def invalid_body(request: Request, exc: RequestValidationError):
    return _error(400, "Invalid request body.")

@app.get("/health")
def health():
    return {"ok": True}

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

@app.post("/chat", response_model=ChatResponse, responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}})
async def chat(req: ChatRequest):
    rid = ensure_request_id(req.request_id)
    timer = Timer.start()

    try:
        result = await GATEWAY.handle(req, request_id=rid)
    except GatewayError as e:
        latency = timer.ms()
        REQ_COUNT.labels(route="error", status=str(e.status_code)).inc()
        log("chat_error", request_id=rid, status=e.status_code, error=e.message, latency_ms=latency)
        return _error(e.status_code, e.message, rid)
    except Exception as e:
        REQ_COUNT.labels(route="error", status="500").inc()
        log_error("chat_error", e, request_id=rid, status=500, latency_ms=timer.ms())
        logger.exception("/chat failed")
        return _error(500, "Internal error", rid)

    latency = timer.ms()
    REQ_COUNT.labels(route=result.route, status="200").inc()
    REQ_LATENCY_MS.labels(route=result.route).observe(latency)

    log(
        "chat_done",
        request_id=rid,
        route=result.route,
        cached=result.cached,
        followup=result.followup,
        fallback=result.fallback,
        latency_ms=latency,
        **usage_fields(result.usage, CHAT_MODEL if result.route == ROUTE_MODEL else None),
    )

    return ChatResponse(
        reply=result.reply,
        request_id=rid,
        route=result.route,
        cached=result.cached,
        latency_ms=latency,
    )
