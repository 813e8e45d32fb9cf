from __future__ import annotations

import random
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Pattern, Sequence, Tuple

from topic_matcher import looks_mathy


class Intent(str, Enum):
    GREETING = "greeting"
    THANKS = "thanks"
    FAREWELL = "farewell"
    ACK = "ack"
    SHORT_NUDGE = "short_nudge"
    NON_MATH_REDIRECT = "non_math_redirect"
    PROCEED_TO_MODEL = "proceed_to_model"


@dataclass(frozen=True)
class ClassificationResult:
    intent: Intent
    reply: Optional[str] = None

    @property
    def proceed(self) -> bool:
        return self.intent is Intent.PROCEED_TO_MODEL


# 모델 없이 바로 내보내는 답변들 (카테고리당 4개, 랜덤 선택)
REPLY_POOLS: Dict[Intent, Tuple[str, ...]] = {
    Intent.GREETING: (
        "Hi there! It is wonderful to see you. What math topic would you like us to work on together today?",
        "Hello! I am really glad you are here. What math concept would you like me to make simple for you?",
        "Welcome! Let us make math fun and gentle to learn. Which topic should we start with?",
        "Hey! It is always a pleasure helping parents. Tell me the math topic you would like to explore.",
    ),
    Intent.THANKS: (
        "You are so welcome. It makes me happy to help you make math easier at home.",
        "My pleasure. You are doing an amazing job supporting your child learning.",
        "You are welcome. It is wonderful to guide parents like you through math.",
        "Happy to help anytime. Keep up the great work with your child.",
    ),
    Intent.FAREWELL: (
        "Take care. I will be right here whenever you want more help with math.",
        "See you soon. You are doing great. Keep making learning moments special.",
        "Bye for now. I hope math time feels smoother and more enjoyable.",
        "Thank you for visiting. You are building a strong math foundation at home.",
    ),
    Intent.ACK: (
        "Great. What math idea shall we explore next together?",
        "Sounds lovely. Tell me which topic you would like to work through today.",
        "Perfect. I am ready when you are to make another math idea clear and simple.",
        "Wonderful. Which math topic would you like to focus on next?",
    ),
    Intent.SHORT_NUDGE: (
        "I would love to help you with math. What topic would you like to start with today?",
        "Tell me the math idea that is on your mind, and I will guide you step by step.",
        "What math concept feels tricky right now? I will make it simple to understand.",
        "I am happy to help. Just share the math topic you would like to explore.",
    ),
    Intent.NON_MATH_REDIRECT: (
        "I am here to help with math learning. Could you tell me the math topic you would like to begin with?",
        "My focus is on making math easier for families. What topic can I explain for you today?",
        "I can best help with math. Share any math topic, and we will explore it together warmly.",
        "Let us keep our chat about math so I can support you in the best way possible.",
    ),
}

GREETINGS = [
    re.compile(r"^(hi|hii+|hello+|hey+|hiya|howdy|hola|namaste|yo|sup|what(?:'| i)s up)\b", re.I),
    re.compile(r"\bgood (morning|afternoon|evening|night)\b", re.I),
]
THANKS = [
    re.compile(r"^(thanks|thank you|thanks a lot|thanks so much|thx|ty|tysm|much appreciated|appreciate (it|that))\b", re.I),
    re.compile(r"\bcheers\b", re.I),
]
FAREWELLS = [re.compile(r"^(bye|goodbye|see you|see ya|cya|later|take care)\b", re.I)]
ACKS = [re.compile(r"^(ok|okay|kk|k|cool|nice|great|awesome|got it|understood|sounds good|alright|sure)\b", re.I)]

QUESTION_CUES = [
    re.compile(r"\?"),
    re.compile(
        r"\b(how|why|what|when|where|which|who|explain|teach|show|derive|prove|solve|example|practice|help|again|clarify|meaning|definition)\b",
        re.I,
    ),
]

SHORT_NUDGE_MAX_WORDS = 3


def includes_any(text: str, patterns: Sequence[Pattern[str]]) -> bool:
    return any(p.search(text) for p in patterns)


def has_question_cue(text: str) -> bool:
    return includes_any(text, QUESTION_CUES)


def _is_short_nudge(t: str) -> bool:
    return len(t.split()) <= SHORT_NUDGE_MAX_WORDS and not looks_mathy(t) and not has_question_cue(t)


def _is_non_math(t: str) -> bool:
    # 질문이든 아니든 수학이 아니면 돌려보낸다
    return not looks_mathy(t)


Rule = Tuple[Intent, Callable[[str], bool]]

# 위에서부터 먼저 맞는 규칙이 이긴다
RULES: List[Rule] = [
    (Intent.GREETING, lambda t: includes_any(t, GREETINGS)),
    (Intent.THANKS, lambda t: includes_any(t, THANKS)),
    (Intent.FAREWELL, lambda t: includes_any(t, FAREWELLS)),
    (Intent.ACK, lambda t: includes_any(t, ACKS)),
    (Intent.SHORT_NUDGE, _is_short_nudge),
    (Intent.NON_MATH_REDIRECT, _is_non_math),
]


class IntentClassifier:
    def __init__(self, rng: Optional[random.Random] = None, rules: Optional[List[Rule]] = None):
        self.rng = rng or random.Random()
        self.rules = rules if rules is not None else RULES

    def pick(self, intent: Intent) -> str:
        return self.rng.choice(REPLY_POOLS[intent])

    def match(self, text: str) -> Intent:
        t = (text or "").lower().strip()
        for intent, predicate in self.rules:
            if predicate(t):
                return intent
        return Intent.PROCEED_TO_MODEL

    def classify(self, text: str) -> ClassificationResult:
        intent = self.match(text)
        if intent is Intent.PROCEED_TO_MODEL:
            return ClassificationResult(intent=intent)
        return ClassificationResult(intent=intent, reply=self.pick(intent))
