import os, json, statistics, time
import requests

BASE = os.getenv("BASE_URL", "http://localhost:8000")
N = int(os.getenv("GATE_N", "10"))
MAX_P95_MS = int(os.getenv("GATE_MAX_P95_MS", "8000"))
MAX_ERROR_RATE = float(os.getenv("GATE_MAX_ERROR_RATE", "0.1"))

PROMPTS = [
    "How do I explain fractions to my child?",
    "what is a fracton",
    "How can I teach multiplication at home?",
    "My kid is stuck on long division, help",
    "What is the slope of a line?",
]

FORBIDDEN = ("start", "positive close")

def format_problems(reply: str) -> list:
    problems = []
    lines = [ln.strip() for ln in reply.splitlines() if ln.strip()]
    if not lines:
        return ["empty reply"]
    if lines[0].startswith("#") or lines[0].startswith("**"):
        problems.append("opens with a heading")
    if any(ln.strip("#*_: ").lower() in FORBIDDEN for ln in lines):
        problems.append("forbidden heading line")
    if "**Practice Together**" in reply and "builds confidence" not in reply.split("**Practice Together**", 1)[1]:
        problems.append("no positive close after practice")
    return problems

def main():
    latencies = []
    errors = 0
    format_failures = []

    for i in range(N):
        prompt = PROMPTS[i % len(PROMPTS)]
        payload = {
            "messages": [{"role": "user", "content": prompt}],
            "request_id": f"gate-{int(time.time())}-{i}"
        }
        t0 = time.time()
        r = requests.post(f"{BASE}/chat", json=payload, timeout=120)
        dt = int((time.time() - t0) * 1000)

        if r.status_code != 200:
            errors += 1
            continue

        data = r.json()
        reply = data.get("reply")
        if not reply:
            errors += 1
            continue

        problems = format_problems(reply)
        if problems:
            format_failures.append({"prompt": prompt, "problems": problems})

        latencies.append(dt)

    if not latencies:
        raise SystemExit("GATE FAIL: no successful responses")

    p95 = statistics.quantiles(latencies, n=20)[18] if len(latencies) > 1 else latencies[0]
    err_rate = errors / N

    print(json.dumps({
        "n": N,
        "success": len(latencies),
        "errors": errors,
        "error_rate": err_rate,
        "p95_ms": p95,
        "format_failures": format_failures,
    }, ensure_ascii=False, indent=2))

    if p95 > MAX_P95_MS:
        raise SystemExit(f"GATE FAIL: p95 {p95}ms > {MAX_P95_MS}ms")
    if err_rate > MAX_ERROR_RATE:
        raise SystemExit(f"GATE FAIL: error_rate {err_rate} > {MAX_ERROR_RATE}")
    if format_failures:
        raise SystemExit(f"GATE FAIL: {len(format_failures)} replies broke the format rules")

if __name__ == '__main__':
    main()
