import re
from typing import Optional, Sequence

from intent import has_question_cue
from schemas import Message
from topic_matcher import first_topic, looks_mathy, normalize_text

FOLLOWUP_MAX_WORDS = 10
FOLLOWUP_CUES = re.compile(r"\b(again|that|it|this|them|those|explain|meaning|definition)\b")

GENERIC_TOPIC = "the recent math topic discussed above"

HINT_TEMPLATE = (
    "Context hint: The parent is asking a follow up about {topic}. "
    "Provide a gentle clarification speaking to the parent."
)


def has_referential_cue(text: str) -> bool:
    """again/that/it 처럼 앞 대화를 가리키는 단어가 있는지"""
    return bool(FOLLOWUP_CUES.search(normalize_text(text)))


def looks_like_followup(text: str) -> bool:
    t = normalize_text(text)
    word_count = len(t.split())
    has_cue = has_referential_cue(t) or has_question_cue((text or "").lower())
    return has_cue and word_count <= FOLLOWUP_MAX_WORDS


def recent_topic(history: Sequence[Message]) -> Optional[str]:
    """
    현재 턴(마지막 메시지)을 제외하고 뒤에서부터 훑는다.
    1) 카탈로그 토픽이 처음 나오는 메시지의 토픽
    2) 없으면, 수학스러운 메시지가 하나라도 있으면 일반 문구
    """
    prior = [m for m in history[:-1] if m.role != "system"]

    for m in reversed(prior):
        topic = first_topic(m.content)
        if topic:
            return topic

    if any(looks_mathy(m.content) for m in prior):
        return GENERIC_TOPIC

    return None


def resolve(history: Sequence[Message], last_user_text: str) -> Optional[str]:
    """follow-up이면 모델에 넘길 context hint 문자열, 아니면 None"""
    if not looks_like_followup(last_user_text):
        return None
    # 토픽이 이미 명시돼 있으면 보정할 필요 없음
    if looks_mathy(last_user_text):
        return None

    topic = recent_topic(history)
    if not topic:
        return None
    return HINT_TEMPLATE.format(topic=topic)
