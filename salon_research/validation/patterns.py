"""
Known-bad text the upstream service emits in place of business names.

Each table is a list of (pattern, reason) pairs. New false-positive classes are
added here as rows; the validator and the line heuristic only iterate tables.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern

STATES = r"(?:NSW|VIC|QLD|SA|WA|TAS|NT|ACT)"
STREET_SUFFIXES = (
    r"(?:street|st|road|rd|avenue|ave|lane|ln|drive|dr|place|pl|parade|pde|highway|hwy|way|crescent|cres)"
)


@dataclass(frozen=True)
class TextPattern:
    regex: Pattern
    reason: str

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None


def _rows(reason: str, *patterns: str, flags: int = re.IGNORECASE) -> List[TextPattern]:
    return [TextPattern(re.compile(p, flags), reason) for p in patterns]


REASONING_FRAGMENTS = _rows(
    "reasoning fragment",
    r"^they want\b",
    r"^that's\s",
    r"^so i have\b",
    r"^okay\s*,?\s*i\b",
    r"^the\s+user\b",
    r"\buser asked for\b",
    r"\blet me\b",
    r"\bi need to\b",
    r"\bi (?:have|think|will|should|must)\b",
    r"\bi(?:'ll|’ll|'ve|’ve)\b",
    r"^now\s+i\b",
    r"\bi found\b",
    r"\b(?:searching|looking) for\b",
    r"\bneed to (?:exclude|check)\b",
    r"\bshould be excluded\b",
    r"\bverify which\b",
    r"\bgo through\b",
    r"\bcompile this list\b",
    r"\bextract the relevant\b",
    r"\bcheck if\b",
    r"\borganize them\b",
    r"\bremove duplicates\b",
    r"\bbased on the criteria\b",
    r"\bas per search results\b",
    r"\bmake sure to\b",
    r"^this\s+gives\s+me\b",
    r"^after\s+removing\b",
    r"\b(?:is|are) listed\b",
    r"\bmultiple times\b",
    r"\bsame business\b",
    r"\bbut listed\b",
    r"\blocation not specified\b",
    r"\bbusinesses that are confirmed\b",
    r"\bestablishments if they exist\b",
)

META_TEXT = _rows(
    "meta text",
    r"^\[?\d+\]?$",
    r"^from\s+\[",
    r"^reference\s+",
    r"^result\s+\d+",
    r"^here\s+(?:are|is)\b",
    r"^based\s+on\b",
    r"^according\s+to\b",
    r"^list\s+of\b",
    r"^\s*<.*>\s*$",
    r"^```",
    r"\b(?:results|total|note|summary|category|categories):",
    r"^exclude\s+",
    r"^deduplicate\s+",
    r"^use\s+the\s+exact\b",
    r"^all\s+others?\s+appear\b",
    r"^(?:title|conclusion)\s*\(",
    r"^summary\s+paragraph\b",
    r"^main\s+body\b",
    r"\[name\]|\{name\}",
    r"^(?:salon|business)\s+name(?:\s+\d+)?$",
    r"^(?:example|sample|test)\s+salon\b",
    r"^placeholder\b",
    r"\bhair\s+salon\s+scene\b",
    STATES + r",\s+Australia,?\s+" + STATES,
)

CATEGORY_HEADERS = _rows(
    "category header",
    r"^\s*\(\d+\)\s*:?\s*$",
    r"^[A-Za-z\s&]+\s+\(\d+\)\s*:?\s*$",
    r"^(?:hair|beauty|nail|day|lash|skin|massage|brow|wellness|aesthetics?)\b[\w\s&]*:\s*$",
    r"^(?:beauty|hair|nail)\s+salons?:?$",
    r"^spas?:?$",
    r"^(?:beauty\s+and\s+hair|hair|nail|beauty|all)\s+salons?\s+in\b",
    r"^(?:list|find)\s+.*salons?\s+in\b",
    r"^search\s+for\s+.*salons?\b",
)

ADDRESS_SHAPES = _rows(
    "address, not a business name",
    r"^\d+[a-z]?(?:/\d+[a-z]?)?\s+(?:[\w'’-]+\s+){1,3}" + STREET_SUFFIXES
    + r"\b\.?(?:,?\s+[\w\s]+)?$",
    r"^(?:shop|suite|unit|level)\s+\d+[a-z]?\s*[,/]\s*\d+",
)

SERVICE_PHRASES = _rows(
    "service description, not a business name",
    r"^(?:beard trimming|men's shaving|head shave|men's haircut|gel nails|manicure|nail art|pedicure"
    r"|fish pedicure|dermaplaning|microdermabrasion|threading|acne facial|henna tattoos"
    r"|eyelash extensions|brow lamination|eyebrow shaping|led light therapy|hair transplants"
    r"|laser hair removal|dermal fillers|blow dry|hair extensions|balayage|children's haircut"
    r"|makeup service|facial|brow shape|rejuvenating facial)s?$",
)

# Applied only to names longer than LONG_NAME_THRESHOLD characters.
PROMPT_ECHOES = [
    TextPattern(re.compile(r"\bin\s+[A-Z][a-z]+,?\s+" + STATES + r"\b"), "prompt echo"),
] + _rows(
    "prompt echo",
    r"\bAustralia\b.*\bAustralia\b",
    r"\b(?:locate|find|search|list)\b",
    r"\b(?:all|every|each|any)\s+salons?\b",
)
LONG_NAME_THRESHOLD = 50

NAME_REJECTION_PATTERNS: List[TextPattern] = (
    REASONING_FRAGMENTS + META_TEXT + CATEGORY_HEADERS + ADDRESS_SHAPES + SERVICE_PHRASES
)

GENERIC_TERMS = frozenset({
    "thinking", "processing", "loading", "error", "undefined", "null", "none", "n/a",
    "not found", "unavailable", "hair salons", "beauty salons", "nail salons", "day spas",
    "lash studios", "skin clinics", "wellness centers", "massage centers",
    "lash extension studios", "massage parlors", "waxing and hair removal clinics",
    "makeup studios", "hair salons and barbershops",
})

# Annotation handling in clean_name. Out-of-area markers reject the entry.
OUT_OF_AREA = _rows(
    "not in the target area",
    r"\(\s*not\s+in\b[^)]*\)",
    r"\(\s*in\s+[^),]+,?\s*not\s+(?:in\s+)?[^)]*\)",
)

ANNOTATIONS: List[Pattern] = [
    re.compile(
        r"\s*\([^)]*\b(?:already listed|duplicate|incomplete|appears to be|same as|excluded|also listed"
        r"|also offers|not directly relevant|not a spa|need to check|barber(?:shop)?)\b[^)]*\)",
        re.IGNORECASE,
    ),
    re.compile(r"\s*\((?:incomplete|appears to be)\b[^)]*$", re.IGNORECASE),
    re.compile(r"\s*\(\s*in\s+[^)]*\)", re.IGNORECASE),
    re.compile(r"\s*\((?:(?:hair|nail|beauty)\s+salon|spa|massage)\)", re.IGNORECASE),
    re.compile(r"\s*\([^)]*\b(?:this|though|as|but|may|need|based|confirmed)\b[^)]*\)", re.IGNORECASE),
    re.compile(
        r"\s+[-–]\s+(?:already listed|duplicate|incomplete|appears to be|same as|excluded|need to check).*$",
        re.IGNORECASE,
    ),
    re.compile(r"(?:\.{2,}|…)$"),
]


def area_marker(target_area: str) -> Pattern:
    """Redundant marker naming the target area itself, e.g. "(Newtown location)"."""
    area = re.escape(target_area.strip())
    return re.compile(rf"\s*\((?:has\s+an?\s+)?{area}(?:\s+location)?\)", re.IGNORECASE)


def first_match(text: str, table: Iterable[TextPattern]) -> Optional[TextPattern]:
    for row in table:
        if row.matches(text):
            return row
    return None
