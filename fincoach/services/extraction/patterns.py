"""
Pattern library for transcript extraction.

Declarative pattern sets per semantic category plus the amount
normalization helpers. Every amount-bearing pattern exposes a named
``amount`` group; keyword/amount pairings also expose ``kw`` so the
extractor can pick the pairing with the shortest gap.

Amount grammar:
    optional "$", digits with thousands commas, optional decimals,
    optional k/m suffix. An amount never starts inside another number
    and is never a percentage or an age ("28 years old").

Gaps between a keyword and its amount stay within one sentence and
contain no digits, so a keyword pairs with its nearest amount.
"""

import re
from typing import Dict, List, Pattern, Tuple

# =============================================================================
# Building blocks
# =============================================================================

AMOUNT = (
    r"(?<![\w.,])\$?"
    r"(?P<amount>\d+(?:,\d{3})*(?:\.\d+)?(?:[kKmM]\b)?)"
    r"(?![\d%]|\s*(?:percent|years?\s+old|yrs?\s+old))"
)

# Same-sentence, digit-free gap
GAP = r"[^.!?;\n\d]{0,40}?"
SHORT_GAP = r"[^.!?;\n\d]{0,30}?"

_DOLLARS = r"\s*(?:dollars\s*|bucks\s*)?"
_PER = r"(?:per|a|an|each|every|/)\s*"

PER_YEAR = _DOLLARS + r"(?:" + _PER + r"(?:year|yr)\b|annually\b|yearly\b|per\s+annum\b)"
PER_MONTH = _DOLLARS + r"(?:" + _PER + r"(?:month|mo)\b|monthly\b)"
PER_TWO_WEEKS = (
    _DOLLARS
    + r"(?:every\s+(?:two|2|other)\s+weeks\b|bi-?weekly\b|(?:a|per|each|every)\s+paycheck\b)"
)
PER_WEEK = _DOLLARS + r"(?:" + _PER + r"(?:week|wk)\b|\bweekly\b)"
PER_HOUR = _DOLLARS + r"(?:" + _PER + r"(?:hour|hr)\b|\bhourly\b)"

INCOME_CONTEXT = (
    r"\b(?:make|makes|making|made|earn|earns|earning|income|salary|get\s+paid|gets\s+paid|"
    r"bring\s+in|brings\s+in|bringing\s+in|take\s+home|take-home|net|gross)\b"
)

SAVINGS_INTENT = re.compile(
    r"\b(?:save|saving|saved|put\s+away|putting\s+away|set\s+aside|setting\s+aside|goal)\b",
    re.IGNORECASE,
)

# Words that make an annual/monthly figure an outgoing rather than income
SPENDING_INTENT = re.compile(
    r"\b(?:spend|spending|spent|pay|paying|cost|costs|owe|owing)\b", re.IGNORECASE
)

_CLAUSE_BREAK = re.compile(r"[,;.!?\n]|\band\b|\bbut\b", re.IGNORECASE)

_SENTENCE_END = ".!?\n"


def _compile(*patterns: str) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


def keyword_amount_patterns(keywords: str) -> List[Pattern[str]]:
    """Keyword-then-amount and amount-then-keyword pairings for one keyword set."""
    kw = r"\b(?P<kw>" + keywords + r")(?!\w)"
    return _compile(kw + GAP + AMOUNT, AMOUNT + GAP + kw)


# =============================================================================
# Income (tried in this order; first hit wins)
# =============================================================================

INCOME_PATTERNS: List[Tuple[str, List[Pattern[str]]]] = [
    (
        "annual",
        _compile(
            AMOUNT + PER_YEAR + r"(?!\s*(?:on|for|in)\b)",
            r"\b(?:annual|yearly)\s+(?:income|salary|pay|earnings?)\b" + SHORT_GAP + AMOUNT,
        ),
    ),
    (
        "monthly",
        _compile(
            INCOME_CONTEXT + SHORT_GAP + AMOUNT + PER_MONTH,
            r"\bmonthly\s+(?:income|salary|pay|take[-\s]home|earnings?)\b" + SHORT_GAP + AMOUNT,
            AMOUNT + PER_MONTH + r"\s*(?:in\s+)?(?:income|salary|take[-\s]home|after\s+tax)",
        ),
    ),
    (
        "biweekly",
        _compile(
            INCOME_CONTEXT + SHORT_GAP + AMOUNT + PER_TWO_WEEKS,
            r"\bpaycheck\b" + SHORT_GAP + AMOUNT,
        ),
    ),
    (
        "weekly",
        _compile(INCOME_CONTEXT + SHORT_GAP + AMOUNT + PER_WEEK),
    ),
    (
        "hourly",
        _compile(
            AMOUNT + PER_HOUR,
            r"\bhourly\s+(?:rate|wage|pay)\b" + SHORT_GAP + AMOUNT,
        ),
    ),
]

# =============================================================================
# Expenses
# =============================================================================

EXPENSE_KEYWORDS: Dict[str, str] = {
    "rent": r"rent(?:al)?",
    "mortgage": r"mortgage",
    "groceries": r"groceries|grocery(?:\s+bill)?|food\s+shopping",
    "dining": r"dining(?:\s+out)?|eating\s+out|eat\s+out|restaurants?|takeout|take-out|food\s+delivery",
    "transportation": (
        r"car\s+payments?|gas|fuel|commute|commuting|transit|bus\s+pass|"
        r"uber|lyft|taxis?|parking|transportation"
    ),
    "utilities": r"utilities|electric(?:ity)?(?:\s+bill)?|power\s+bill|water\s+bill|internet|phone\s+bill",
    "insurance": r"(?:health\s+|car\s+|auto\s+|renters?\s+|life\s+)?insurance",
    "subscriptions": (
        r"subscriptions?|netflix|spotify|hulu|streaming(?:\s+services?)?|"
        r"disney\+?|apple\s+music|amazon\s+prime"
    ),
    "fitness": r"gym(?:\s+membership)?|yoga|pilates|fitness|crossfit|personal\s+trainer|peloton",
    "entertainment": r"entertainment|concerts?|movies|going\s+out|bars|nightlife|hobbies",
    "travel": r"travel(?:ing|ling)?|vacations?|trips?|flights?",
}

# Any expense keyword, for telling "my rent is 24k a year" from a salary
EXPENSE_SUBJECT = re.compile(
    r"\b(?:" + "|".join(EXPENSE_KEYWORDS.values()) + r")(?!\w)", re.IGNORECASE
)

EXPENSE_PATTERNS: Dict[str, List[Pattern[str]]] = {
    category: keyword_amount_patterns(keywords)
    for category, keywords in EXPENSE_KEYWORDS.items()
}

# Expense category -> budget / lifestyle group
CATEGORY_GROUPS: Dict[str, str] = {
    "rent": "housing",
    "mortgage": "housing",
    "groceries": "food",
    "dining": "food",
    "transportation": "transport",
    "utilities": "other",
    "insurance": "other",
    "subscriptions": "subscriptions",
    "fitness": "fitness",
    "entertainment": "entertainment",
    "travel": "travel",
}

EXPENSE_FREQUENCY_HINT = re.compile(
    _DOLLARS
    + r"(?:(?:a|an|per|each|every|/)\s*(?P<unit>year|yr|week|wk|day)\b"
    r"|(?P<adverb>annually|yearly|weekly|daily)\b)",
    re.IGNORECASE,
)

# =============================================================================
# Debts
# =============================================================================

DEBT_TYPES: Dict[str, str] = {
    "credit_card": "Credit Card",
    "student_loan": "Student Loan",
    "car_loan": "Car Loan",
    "personal_loan": "Personal Loan",
}

DEBT_PATTERNS: Dict[str, List[Pattern[str]]] = {
    "credit_card": keyword_amount_patterns(r"credit\s+cards?(?:\s+debt)?"),
    "student_loan": keyword_amount_patterns(r"student\s+(?:loans?|debt)"),
    "car_loan": keyword_amount_patterns(r"(?:car|auto)\s+loans?"),
    "personal_loan": keyword_amount_patterns(r"personal\s+loans?"),
}

TOTAL_DEBT_PATTERNS: List[Pattern[str]] = _compile(
    r"\b(?P<kw>total\s+debt|in\s+debt|debt\s+total|owe\s+in\s+total)(?!\w)" + GAP + AMOUNT,
    AMOUNT + GAP + r"\b(?P<kw>(?:in|of)\s+(?:total\s+)?debt)(?!\w)",
)

INTEREST_RATE = re.compile(r"(?P<rate>\d{1,2}(?:\.\d+)?)\s*(?:%|percent)", re.IGNORECASE)

# =============================================================================
# Goals (keyword presence, not amounts)
# =============================================================================

SHORT_TERM_GOALS: List[Tuple[str, Pattern[str]]] = [
    (
        "Build emergency fund",
        re.compile(r"\b(?:emergency\s+(?:fund|savings)|rainy\s+day\s+fund)\b", re.IGNORECASE),
    ),
    (
        "Save for vacation",
        re.compile(
            r"\bsav(?:e|ing)\b[^.!?\n]{0,30}?\b(?:vacation|trip|holiday)s?\b", re.IGNORECASE
        ),
    ),
    (
        "Education/Training",
        re.compile(
            r"\b(?:go(?:ing)?\s+back\s+to\s+school|education|training|certification|degree)\b",
            re.IGNORECASE,
        ),
    ),
]

LONG_TERM_GOALS: List[Tuple[str, Pattern[str]]] = [
    ("Retirement planning", re.compile(r"\bretire(?:ment|d)?\b", re.IGNORECASE)),
    (
        "Buy a house",
        re.compile(
            r"\b(?:(?:buy|buying|purchase|own)\s+(?:a\s+|my\s+own\s+|our\s+own\s+)?"
            r"(?:house|home|condo|place)|down\s+payment)\b",
            re.IGNORECASE,
        ),
    ),
    (
        "Start a business",
        re.compile(
            r"\b(?:start|starting|open|opening|launch)\s+(?:a|my\s+own|our\s+own)\s+"
            r"(?:business|company|shop)\b",
            re.IGNORECASE,
        ),
    ),
    (
        "Build investment portfolio",
        re.compile(r"\binvest(?:ing|ment|ments)?\b", re.IGNORECASE),
    ),
]

SAVINGS_TARGET_PATTERNS: List[Pattern[str]] = _compile(
    r"\b(?:save|saving|put\s+away|putting\s+away|set\s+aside|setting\s+aside)\b"
    + r"[^.!?\n\d]{0,20}?"
    + AMOUNT
    + PER_MONTH,
)

# =============================================================================
# Profile fields
# =============================================================================

NAME_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(?i:my\s+name\s+is|call\s+me|name's)\s+(?P<name>[A-Z][a-z]+)"),
    re.compile(r"\b(?:I'm|I\s+am|(?i:this\s+is))\s+(?P<name>[A-Z][a-z]+)\b"),
]

# Capitalized words that follow "I'm" without being a name
NAME_STOP_WORDS = frozenset(
    {
        "A", "An", "The", "Not", "Just", "So", "Really", "Very", "Pretty",
        "Fine", "Good", "Great", "Okay", "Ok", "Sure", "Here", "Ready",
        "Happy", "Excited", "Interested", "Looking", "Trying", "Working",
        "Living", "Currently", "From", "In", "At", "Also", "Still",
        "Worried", "Single", "Married", "Retired",
    }
)

AGE_PATTERNS: List[Pattern[str]] = _compile(
    r"\b(?P<age>\d{1,3})\s*(?:years?|yrs?)[\s-]*old\b",
    r"\b(?:I'm|I\s+am|age\s+is|aged|age)\s+(?P<age>\d{2})\b"
    r"(?![\d,.%]|\s*(?:k\b|dollars|percent|an?\s+hour|per|a\s+(?:year|month|week)))",
)

MIN_AGE = 14
MAX_AGE = 110

LOCATION_PATTERNS: List[Pattern[str]] = [
    re.compile(
        r"\b(?:I\s+live\s+in|I(?:'m|\s+am)\s+(?:based|living|located)\s+in|"
        r"I(?:'m|\s+am)\s+from|(?:just\s+)?moved\s+to)\s+"
        r"(?P<location>[A-Z][\w.'-]*(?:(?:\s+|,\s*)[A-Z][\w.'-]*)*)"
    ),
]

OCCUPATION_PATTERNS: List[Pattern[str]] = [
    re.compile(
        r"\bI\s+work\s+as\s+(?:an?\s+)?(?P<occupation>[a-z][a-z\s-]{1,40}?)"
        r"(?=[.,!?\n]|\s+(?:at|for|in|and|but|so|with)\b|$)"
    ),
    re.compile(
        r"\bI(?:'m|\s+am)\s+an?\s+(?P<occupation>[a-z][a-z-]+(?:\s+[a-z][a-z-]+)?)"
        r"\s+(?:at|for|in|with)\b"
    ),
    re.compile(
        r"\bI\s+work\s+in\s+(?P<occupation>[a-z][a-z\s-]{1,30}?)"
        r"(?=[.,!?\n]|\s+(?:at|for|and|but|so|with)\b|$)"
    ),
]

# =============================================================================
# Lifestyle (keyword -> preference label)
# =============================================================================

LIFESTYLE_PATTERNS: Dict[str, List[Tuple[str, Pattern[str]]]] = {
    "housing": [
        ("Owns home", re.compile(r"\b(?:mortgage|own\s+(?:my|our|a)\s+(?:home|house|place|condo))\b", re.I)),
        ("Shared housing", re.compile(r"\b(?:roommates?|flatmates?|housemates?)\b", re.I)),
        ("Lives with family", re.compile(r"\b(?:live|living)\s+with\s+(?:my\s+)?(?:parents|family)\b", re.I)),
        ("Renting", re.compile(r"\b(?:rent|renting|lease)\b", re.I)),
        ("Home", re.compile(r"\b(?:apartment|condo|house|studio)\b", re.I)),
    ],
    "food": [
        ("Cooks at home", re.compile(r"\b(?:cook(?:ing)?(?:\s+\w+)?\s+at\s+home|meal\s+prep(?:ping)?)\b", re.I)),
        ("Eats out", re.compile(r"\b(?:eat(?:ing)?\s+out|restaurants?|dining\s+out|takeout|take-out|delivery|doordash)\b", re.I)),
        ("Groceries", re.compile(r"\bgrocer(?:y|ies)\b", re.I)),
    ],
    "transport": [
        ("Public transit", re.compile(r"\b(?:public\s+transit|subway|bus|train|metro)\b", re.I)),
        ("Drives", re.compile(r"\b(?:(?:my|a|our)\s+car|drive|driving)\b", re.I)),
        ("Bikes or walks", re.compile(r"\b(?:bike|bicycle|walk\s+to\s+work|walking)\b", re.I)),
        ("Rideshare", re.compile(r"\b(?:uber|lyft|rideshare|taxi)\b", re.I)),
    ],
    "fitness": [
        ("Gym", re.compile(r"\b(?:gym|crossfit|peloton)\b", re.I)),
        ("Yoga or pilates", re.compile(r"\b(?:yoga|pilates)\b", re.I)),
        ("Outdoor exercise", re.compile(r"\b(?:run|running|jog|jogging|hike|hiking|cycling)\b", re.I)),
        ("Sports", re.compile(r"\b(?:sports?|basketball|soccer|tennis|swim(?:ming)?)\b", re.I)),
    ],
    "entertainment": [
        ("Shows and movies", re.compile(r"\b(?:concerts?|shows?|theat(?:er|re)|movies?|cinema)\b", re.I)),
        ("Going out", re.compile(r"\b(?:bars?|drinks|going\s+out|clubs?|nightlife)\b", re.I)),
        ("Gaming", re.compile(r"\b(?:video\s+games?|gaming)\b", re.I)),
        ("Hobbies", re.compile(r"\b(?:hobb(?:y|ies)|reading|books)\b", re.I)),
    ],
    "subscriptions": [
        (
            "Streaming services",
            re.compile(r"\b(?:netflix|hulu|hbo|spotify|apple\s+music|youtube\s+premium|streaming)\b", re.I),
        ),
        ("Prime membership", re.compile(r"\b(?:amazon\s+prime|prime\s+membership)\b", re.I)),
        ("Subscriptions", re.compile(r"\bsubscriptions?\b", re.I)),
    ],
    "travel": [
        ("Travels", re.compile(r"\b(?:travel(?:ing|ling)?|trips?|vacations?|holidays?|flights?|abroad)\b", re.I)),
    ],
}

# =============================================================================
# Normalization
# =============================================================================

_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}


def normalize_amount(text: str) -> float:
    """
    Parse a spoken/typed amount into a number.

    Strips currency symbols, commas and whitespace and honours a trailing
    k (thousand) or m (million) suffix. Unparseable input yields 0; this
    never raises.

    >>> normalize_amount("100k")
    100000.0
    >>> normalize_amount("$1,500")
    1500.0
    """
    if not text:
        return 0.0

    cleaned = re.sub(r"[$,\s]", "", str(text)).lower()
    multiplier = 1
    if cleaned and cleaned[-1] in _MULTIPLIERS:
        multiplier = _MULTIPLIERS[cleaned[-1]]
        cleaned = cleaned[:-1]

    try:
        value = float(cleaned)
    except ValueError:
        return 0.0

    # float() accepts "nan" and "inf"; neither is an amount
    if value != value or value in (float("inf"), float("-inf")):
        return 0.0
    return value * multiplier


def convert_to_monthly(amount: float, frequency: str = "monthly") -> float:
    """Convert an amount stated at ``frequency`` into a monthly figure."""
    if frequency == "annual":
        return amount / 12
    if frequency == "biweekly":
        return amount * 26 / 12
    if frequency == "weekly":
        return amount * 52 / 12
    if frequency == "daily":
        return amount * 30
    if frequency == "hourly":
        return amount * 160
    return amount


def sentence_at(text: str, index: int) -> str:
    """The sentence (or transcript line) containing position ``index``."""
    start = max(text.rfind(ch, 0, index) for ch in _SENTENCE_END) + 1
    ends = [pos for pos in (text.find(ch, index) for ch in _SENTENCE_END) if pos != -1]
    end = min(ends) + 1 if ends else len(text)
    return text[start:end].strip()


def clause_before(text: str, index: int, width: int = 30) -> str:
    """Words immediately before ``index``, cut at the nearest clause break."""
    window = text[max(0, index - width) : index]
    return _CLAUSE_BREAK.split(window)[-1]


def has_savings_intent(text: str, index: int) -> bool:
    return bool(SAVINGS_INTENT.search(clause_before(text, index)))


def has_spending_intent(text: str, index: int) -> bool:
    return bool(SPENDING_INTENT.search(clause_before(text, index)))


def names_expense(text: str, index: int) -> bool:
    """True when the clause before ``index`` is about an expense, not earnings."""
    clause = clause_before(text, index)
    if re.search(INCOME_CONTEXT, clause, re.IGNORECASE):
        return False
    return bool(EXPENSE_SUBJECT.search(clause))
