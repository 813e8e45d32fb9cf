import re
from typing import Iterable, List, Optional, Sequence, Tuple

from topic_catalog import CATALOG, FUZZY_MIN_TOKEN_LEN, FUZZY_TIERS

OPERATOR_CUES = re.compile(r"[0-9]|[+\-*/=^%()]")

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WS = re.compile(r"\s+")


def normalize_text(s: str) -> str:
    """소문자화 + 영숫자/공백만 남기고 공백 정리"""
    t = _NON_ALNUM.sub("", (s or "").lower())
    return _WS.sub(" ", t).strip()


_NORMALIZED_CATALOG: List[Tuple[str, str]] = [(topic, normalize_text(topic)) for topic in CATALOG]


def levenshtein(a: str, b: str) -> int:
    m, n = len(a), len(b)
    if m == 0:
        return n
    if n == 0:
        return m

    # 한 줄씩만 유지하는 DP
    prev = list(range(n + 1))
    for i in range(1, m + 1):
        cur = [i] + [0] * n
        for j in range(1, n + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            cur[j] = min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost)
        prev = cur
    return prev[n]


def within_tolerance(token_len: int, distance: int, tiers: Sequence[Tuple[int | None, int]] = FUZZY_TIERS) -> bool:
    """토큰 길이가 속한 첫 구간의 허용 거리 안이면 True"""
    for max_len, max_dist in tiers:
        if max_len is None or token_len <= max_len:
            return distance <= max_dist
    return False


def has_operator_cue(text: str) -> bool:
    return bool(OPERATOR_CUES.search(text or ""))


def first_topic(text: str, catalog: Iterable[Tuple[str, str]] = _NORMALIZED_CATALOG) -> Optional[str]:
    t = normalize_text(text)
    if not t:
        return None
    for topic, norm in catalog:
        if norm and norm in t:
            return topic
    return None


def fuzzy_topic(token: str) -> Optional[str]:
    if len(token) < FUZZY_MIN_TOKEN_LEN:
        return None
    for topic, norm in _NORMALIZED_CATALOG:
        if within_tolerance(len(token), levenshtein(token, norm)):
            return topic
    return None


def looks_mathy(text: str) -> bool:
    # 1) 숫자/연산자가 있으면 바로 수학으로 본다
    if has_operator_cue(text):
        return True

    t = normalize_text(text)
    if not t:
        return False

    # 2) 카탈로그 부분 문자열
    if first_topic(t) is not None:
        return True

    # 3) 토큰 단위 편집거리
    return any(fuzzy_topic(tok) for tok in t.split(" "))
