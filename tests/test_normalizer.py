import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from normalizer import (
    POSITIVE_CLOSE,
    PREFACE,
    canonicalize_notation,
    ensure_positive_close,
    has_positive_close,
    normalize,
    section_title_of,
    strip_forbidden_headings,
)

SAMPLES = [
    "**Core Idea**\nFractions are parts of a whole.",
    "Start\r\nHello!\r\n\r\n1. Core Idea:\r\nLet ( y ) be the height.\r\n## Practice Together\r\nTry x squared.",
    "( x )\n\n\n\n**Practice Together**\nSolve $ \\int x , dx $\n\n**Curiosity Questions**\nWhy?",
    "",
    "Plain answer with no headings at all.",
    "### Positive Close\n**Great effort, this builds confidence!**",
]

def _bare_lines(text):
    return [ln.strip().strip("#*_: ").lower() for ln in text.split("\n")]

def test_heading_first_gets_preface():
    out = normalize("**Core Idea**\nFractions are parts of a whole.")
    assert out.startswith(PREFACE + "\n\n**Core Idea**")
    assert out.endswith(POSITIVE_CLOSE)

def test_paragraph_first_is_kept():
    out = normalize("Fractions are friendly.\n\n**Core Idea**\nParts of a whole.")
    assert out.startswith("Fractions are friendly.")
    assert PREFACE not in out

@pytest.mark.parametrize(
    "raw,expected",
    [
        ("The slope is ( f(x) ) here.", "The slope is $ f(x) $ here."),
        ("Let ( y ) be the height.", "Let $ y $ be the height."),
        ("Take ( -3 ).", "Take $ -3 $."),
        ("So \\( x + 1 \\) works.", "So $ x + 1 $ works."),
        ("\\[ a^2 + b^2 \\]", "$$ a^2 + b^2 $$"),
        ("Think of x squared.", "Think of $ x^2 $."),
        ("and y cubed", "and $ y^3 $"),
        ("so x to the power of 3", "so $ x^3 $"),
        ("Use a ruler (optional) here.", "Use a ruler (optional) here."),
        ("Think of \\( x squared \\) here.", "Think of $ x^2 $ here."),
        ("Write $x squared$ now.", "Write $x^2$ now."),
        ("$$ y to the power of 3 $$", "$$ y^3 $$"),
        ("Keep $ f(x) $ and ( y ) apart.", "Keep $ f(x) $ and $ y $ apart."),
    ],
)
def test_notation(raw, expected):
    assert canonicalize_notation(raw) == expected

def test_integral_gets_thin_space_once():
    out = canonicalize_notation("Area is $ \\int x^2 , dx $.")
    assert "\\,dx $" in out
    assert ", dx" not in out
    assert canonicalize_notation(out) == out

def test_forbidden_headings_are_removed():
    raw = "Start\nHello parent.\n**Core Idea**\nIdea.\n### Positive Close:\nGreat work."
    out = strip_forbidden_headings(raw)
    assert out == "Hello parent.\n**Core Idea**\nIdea.\n\nGreat work."

def test_numbered_titles_become_bold():
    raw = "1. Core Idea:\nText\n2) Household Demonstration\nMore\nStep by Step Teaching Guide\nSteps\n## Practice Together\nTry 2 + 3."
    out = normalize(raw)
    lines = out.split("\n")
    assert "**Core Idea**" in lines
    assert "**Household Demonstration**" in lines
    assert "**Step-by-Step Teaching Guide**" in lines
    assert "**Practice Together**" in lines
    assert out.startswith(PREFACE)
    assert out.endswith("Try 2 + 3.\n\n" + POSITIVE_CLOSE)

def test_section_title_of():
    assert section_title_of("**The Math Behind It**") == "The Math Behind It"
    assert section_title_of("### 3. the math behind it:") == "The Math Behind It"
    assert section_title_of("Real Life Connection or Fun Fact") == "Real-Life Connection or Fun Fact"
    assert section_title_of("The math behind it is simple.") is None
    assert section_title_of("") is None

def test_positive_close_goes_before_next_title():
    raw = "Intro.\n\n**Practice Together**\nTry it.\n\n**Curiosity Questions**\nWhy?"
    out = ensure_positive_close(raw)
    assert "Try it.\n\n" + POSITIVE_CLOSE + "\n\n**Curiosity Questions**" in out

def test_existing_positive_close_is_not_duplicated():
    raw = "**Practice Together**\nTry it.\n\n**Great effort, this builds confidence!**"
    out = normalize(raw)
    assert out.count("builds confidence") == 1
    assert POSITIVE_CLOSE not in out
    assert has_positive_close(out)

def test_empty_input():
    assert normalize("") == PREFACE + "\n\n" + POSITIVE_CLOSE
    assert normalize(None) == PREFACE + "\n\n" + POSITIVE_CLOSE

@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once

@pytest.mark.parametrize("raw", SAMPLES)
def test_no_forbidden_heading_survives(raw):
    bare = _bare_lines(normalize(raw))
    assert "start" not in bare
    assert "positive close" not in bare

@pytest.mark.parametrize("raw", ["Think of \\( x squared \\) here.", "Write $x squared$ now.", "$ x cubed $ or y cubed"])
def test_power_words_inside_math_keep_delimiters_balanced(raw):
    out = normalize(raw)
    assert "$ $" not in out
    assert "$$" not in out
    assert out.count("$") % 2 == 0
    assert normalize(out) == out
