import asyncio
import os
import time
from contextlib import asynccontextmanager

from errors import ServerBusyError
from metrics_prom import INFLIGHT, QUEUE_WAIT_MS

MAX_CONCURRENCY = int(os.getenv("MAX_CONCURRENCY", "4"))
QUEUE_TIMEOUT_SEC = float(os.getenv("QUEUE_TIMEOUT_SEC", "10"))
LLM_TIMEOUT_SEC = float(os.getenv("LLM_TIMEOUT_SEC", "40"))

# 프로세스 전체에서 공유 (동시 모델 호출 수 제한)
GLOBAL_SEM = asyncio.Semaphore(MAX_CONCURRENCY)

async def with_timeout(coro, timeout_sec: float):
    return await asyncio.wait_for(coro, timeout=timeout_sec)

@asynccontextmanager
async def model_slot(semaphore: asyncio.Semaphore = GLOBAL_SEM, timeout_sec: float = QUEUE_TIMEOUT_SEC):
    """
    모델 호출 슬롯 1개를 잡는다.
    timeout_sec 안에 못 잡으면 ServerBusyError (429).
    """
    t0 = time.perf_counter()
    try:
        await asyncio.wait_for(semaphore.acquire(), timeout=timeout_sec)
    except asyncio.TimeoutError:
        raise ServerBusyError("Server busy (queue timeout)")
    finally:
        QUEUE_WAIT_MS.observe(int((time.perf_counter() - t0) * 1000))

    INFLIGHT.inc()
    try:
        yield
    finally:
        INFLIGHT.dec()
        semaphore.release()
