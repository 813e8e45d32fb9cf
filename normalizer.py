"""
모델 응답 후처리.

각 pass는 str -> str 순수 함수이고, normalize()가 정해진 순서로 이어 붙인다.
뒤의 pass는 앞 pass가 만든 형태를 전제로 하므로 순서를 바꾸지 말 것.
모든 pass는 어떤 입력에도 예외를 던지지 않고, 두 번 돌려도 결과가 같다.
"""
import re
from typing import Callable, List, Optional, Sequence

from llm_adapter import CONTENT_ONLY_SECTIONS, SECTION_TITLES

PREFACE = "I am glad you are here. Let us make this simple together."
POSITIVE_CLOSE = "**You are doing a wonderful job guiding your child. Every step you take together builds confidence.**"
PRACTICE_TITLE = "Practice Together"

Pass = Callable[[str], str]

# ---------------------------------------------------------------------------
# 1) KaTeX 표기 통일
# ---------------------------------------------------------------------------
_TEX_INLINE = re.compile(r"\\\(\s*([\s\S]*?)\s*\\\)")
_TEX_DISPLAY = re.compile(r"\\\[\s*([\s\S]*?)\s*\\\]")

_POWER_OF = re.compile(
    r"\b([A-Za-z][A-Za-z0-9]*)[ \t]+(?:to[ \t]+the[ \t]+power[ \t]+of|power)[ \t]+(-?\d+)\b", re.I
)
_SQUARED = re.compile(r"\b([A-Za-z][A-Za-z0-9]*)[ \t]+squared\b", re.I)
_CUBED = re.compile(r"\b([A-Za-z][A-Za-z0-9]*)[ \t]+cubed\b", re.I)

# 괄호 앞은 문자열 시작/공백/'>' , 뒤는 공백/구두점/닫는 괄호/끝
_BEFORE = r"(?<![^\s>])"
_AFTER = r"(?=[\s<.,;:!?)]|$)"

_PAREN_TEX_CMD = re.compile(_BEFORE + r"\([ \t]*(\\[a-zA-Z][^)$\n]*?)[ \t]*\)" + _AFTER)
_PAREN_ATOM = re.compile(_BEFORE + r"\([ \t]*([A-Za-z][A-Za-z]?[0-9]*'*|-?\d+(?:\.\d+)?)[ \t]*\)" + _AFTER)
_PAREN_CALL = re.compile(_BEFORE + r"\([ \t]*([A-Za-z][A-Za-z0-9']*[ \t]*\([^()$\n]*\))[ \t]*\)" + _AFTER)

# ",dx" -> "\,dx" (이미 "\," 인 경우는 건드리지 않음)
_INTEGRAL_DX = re.compile(r"\$[ \t]*\\int([^$]*?)(?<!\\),[ \t]*dx[ \t]*\$")


def _inline(m: re.Match) -> str:
    return f"$ {m.group(1).strip()} $"


# 이미 구분자로 감싼 수식 구간 ($$ 먼저)
_MATH_SPAN = re.compile(r"(\$\$[\s\S]*?\$\$|\$[^$\n]*\$)")


def _power_words(text: str, wrap: Callable[[str], str]) -> str:
    out = _POWER_OF.sub(lambda m: wrap(f"{m.group(1)}^{m.group(2)}"), text)
    out = _SQUARED.sub(lambda m: wrap(f"{m.group(1)}^2"), out)
    return _CUBED.sub(lambda m: wrap(f"{m.group(1)}^3"), out)


def _rewrite_prose(text: str) -> str:
    out = _power_words(text, lambda s: f"$ {s} $")
    out = _PAREN_TEX_CMD.sub(_inline, out)
    out = _PAREN_ATOM.sub(_inline, out)
    return _PAREN_CALL.sub(_inline, out)


def _rewrite_math(span: str) -> str:
    # 수식 안에서는 구분자를 다시 붙이지 않는다
    return _power_words(span, lambda s: s)


def canonicalize_notation(text: str) -> str:
    out = text
    out = _TEX_INLINE.sub(lambda m: f"$ {m.group(1)} $", out)
    out = _TEX_DISPLAY.sub(lambda m: f"$$ {m.group(1)} $$", out)

    # split 결과의 홀수 번째 조각이 수식 구간
    parts = _MATH_SPAN.split(out)
    out = "".join(_rewrite_math(p) if i % 2 else _rewrite_prose(p) for i, p in enumerate(parts))

    out = _INTEGRAL_DX.sub(lambda m: f"$ \\int{m.group(1)} \\,dx $", out)
    return out


# ---------------------------------------------------------------------------
# 2) "Start" / "Positive Close" 제목 줄 제거
# ---------------------------------------------------------------------------
def _forbidden_line(name: str) -> re.Pattern:
    words = r"[ \t]+".join(re.escape(w) for w in name.split())
    return re.compile(
        r"^[ \t]*(?:#{1,6}[ \t]*)?(?:\*{1,2}|_{1,2})?[ \t]*" + words + r"[ \t]*:?[ \t]*(?:\*{1,2}|_{1,2})?[ \t]*:?[ \t]*$",
        re.I | re.M,
    )


_FORBIDDEN_LINES = [_forbidden_line(name) for name in CONTENT_ONLY_SECTIONS]
_EXTRA_BLANKS = re.compile(r"\n(?:[ \t]*\n){2,}")


def collapse_blank_lines(text: str) -> str:
    return _EXTRA_BLANKS.sub("\n\n", text).strip()


def strip_forbidden_headings(text: str) -> str:
    out = text
    for rx in _FORBIDDEN_LINES:
        out = rx.sub("", out)
    return collapse_blank_lines(out)


# ---------------------------------------------------------------------------
# 섹션 제목 인식 (3, 4, 5에서 공용)
# ---------------------------------------------------------------------------
def _title_body(title: str) -> str:
    parts = re.split(r"([- ])", title.lower())
    return "".join(r"[- ]" if p in ("-", " ") else re.escape(p) for p in parts)


_TITLE_LINES = [
    (title, re.compile(r"^(?:\d+[.)][ \t]*)?" + _title_body(title) + r"[ \t]*:?$", re.I))
    for title in SECTION_TITLES
]
_MD_HEADING = re.compile(r"^#{1,6}\s")
_BOLD_LINE = re.compile(r"^\*\*.*\*\*\s*$")


def _bare(line: str) -> str:
    t = line.strip()
    t = re.sub(r"^#{1,6}[ \t]*", "", t)
    return t.replace("**", "").strip()


def section_title_of(line: str) -> Optional[str]:
    """줄이 섹션 제목이면 정식 제목 문자열, 아니면 None"""
    bare = _bare(line)
    if not bare:
        return None
    for title, rx in _TITLE_LINES:
        if rx.match(bare):
            return title
    return None


def _split_lines(text: str) -> List[str]:
    return text.split("\n")


# ---------------------------------------------------------------------------
# 3) 첫 문단 보장
# ---------------------------------------------------------------------------
def looks_like_heading(line: str) -> bool:
    first = line.strip()
    return bool(_MD_HEADING.match(first) or _BOLD_LINE.match(first) or section_title_of(first))


def ensure_opening_paragraph(text: str) -> str:
    lines = _split_lines(text)
    idx = next((i for i, ln in enumerate(lines) if ln.strip()), -1)
    if idx == -1:
        return PREFACE

    if looks_like_heading(lines[idx]):
        lines[idx:idx] = [PREFACE, ""]
        return "\n".join(lines)
    return text


# ---------------------------------------------------------------------------
# 4) 섹션 제목: 굵게, 번호/콜론 없이
# ---------------------------------------------------------------------------
def canonicalize_section_titles(text: str) -> str:
    lines = _split_lines(text)
    for i, ln in enumerate(lines):
        title = section_title_of(ln)
        if title:
            lines[i] = f"**{title}**"
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# 5) Practice Together 뒤 격려 문장 보장
# ---------------------------------------------------------------------------
_CELEBRATION = [
    re.compile(r"\*\*[^*\n]*builds confidence[^*\n]*\*\*", re.I),
    re.compile(r"\*\*[^*\n]*wonderful job[^*\n]*\*\*", re.I),
]


def has_positive_close(text: str) -> bool:
    return any(rx.search(text) for rx in _CELEBRATION)


def ensure_positive_close(text: str) -> str:
    if has_positive_close(text):
        return text
    if not text.strip():
        return POSITIVE_CLOSE

    lines = _split_lines(text)
    practice_idx = -1
    for i, ln in enumerate(lines):
        if section_title_of(ln) == PRACTICE_TITLE:
            practice_idx = i

    if practice_idx == -1:
        return text.rstrip() + "\n\n" + POSITIVE_CLOSE

    # practice 다음 섹션 제목 직전 (없으면 끝)
    insert_at = len(lines)
    for i in range(practice_idx + 1, len(lines)):
        if section_title_of(lines[i]):
            insert_at = i
            break

    updated = lines[:insert_at] + ["", POSITIVE_CLOSE, ""] + lines[insert_at:]
    return collapse_blank_lines("\n".join(updated))


# ---------------------------------------------------------------------------
# pipeline
# ---------------------------------------------------------------------------
def unify_newlines(text: str) -> str:
    return re.sub(r"\r\n?", "\n", text)


PIPELINE: Sequence[Pass] = (
    unify_newlines,
    canonicalize_notation,
    strip_forbidden_headings,
    ensure_opening_paragraph,
    canonicalize_section_titles,
    ensure_positive_close,
)


def normalize(raw: str, passes: Sequence[Pass] = PIPELINE) -> str:
    out = raw if isinstance(raw, str) else ""
    for p in passes:
        out = p(out)
    return out
