from typing import Tuple

# 순서가 의미 있음: first_topic()은 이 순서대로 먼저 맞는 항목을 반환
MATH_TOPICS: Tuple[str, ...] = (
    "counting", "addition", "subtraction", "multiplication", "division", "long division", "factors", "multiples", "prime",
    "place value", "rounding", "number line", "fractions", "fraction", "mixed number", "decimal", "percent", "ratio", "proportion",
    "measurement", "unit", "time", "money", "area", "perimeter", "volume", "angle", "shapes", "triangle", "quadrilateral", "polygon",
    "geometry", "coordinate plane", "graph", "slope", "equation", "inequality", "expression", "variable", "exponent", "power",
    "root", "square root", "order of operations", "pemdas", "mean", "median", "mode", "range", "data", "statistics", "probability",
    "algebra", "linear equation", "system of equations", "quadratic", "polynomial", "factoring", "function", "domain", "range-func",
    "sequence", "series", "arithmetic sequence", "geometric sequence", "absolute value",
    "trigonometry", "sine", "cosine", "tangent", "pythagorean", "similarity", "congruence", "transformations",
    "calculus", "limit", "derivative", "integral", "rate of change", "area under curve",
    "matrix", "vector", "coordinate geometry", "logarithm", "log", "scientific notation",
)

# 자주 보이는 오타들 (부모님들이 실제로 입력한 형태)
MISSPELLINGS: Tuple[str, ...] = (
    "fracton", "fractin", "devishon", "divishon", "devision", "substraction",
    "aljebra", "algabra", "multiplcation", "percentge", "percnt",
)

CATALOG: Tuple[str, ...] = MATH_TOPICS + MISSPELLINGS

# (토큰 최대 길이, 허용 편집거리). None = 길이 제한 없음
FUZZY_TIERS: Tuple[Tuple[int | None, int], ...] = (
    (5, 1),
    (8, 2),
    (None, 3),
)

FUZZY_MIN_TOKEN_LEN = 3
