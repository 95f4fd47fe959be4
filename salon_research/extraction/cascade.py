"""
Extraction cascade: recover a record or a name list from free-form text.

Strategies are pure functions `(text, expect) -> Optional[ExtractionResult]`,
tried in order until one yields a value. A strategy either returns a complete
parsed structure of the expected shape or abstains with None.
"""
import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from salon_research.errors import UnrecoverableParseError
from salon_research.models import ExtractionResult, Shape
from salon_research.validation.patterns import GENERIC_TERMS, NAME_REJECTION_PATTERNS, first_match

Strategy = Callable[[str, Shape], Optional[ExtractionResult]]

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
THINK_BLOCK = re.compile(r"<think>.*?(?:</think>|$)", re.DOTALL)
FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
ARRAY_OF_STRINGS_START = re.compile(r"\[\s*\"[^\"]+\"")
NAME_KEY = '"name"'
LIST_KEYS = ("salons", "names", "businesses")
NUMERIC = re.compile(r"^\d+$")

LIST_MARKERS = [
    re.compile(r"^\d+[.)]\s*"),
    re.compile(r"^[-•*●◆▪]\s*"),
    re.compile(r"^\(\d+\)\s*"),
    re.compile(r"^\[\d+\]\s*"),
]
EMPHASIS = re.compile(r"\*\*|__")
SURROUNDING_QUOTES = re.compile(r"^[\"'“”]+|[\"'“”]+$")
TRAILING_PUNCTUATION = re.compile(r"[,;]+$")
SKIPPED_LINE_PREFIXES = ("<", "{", "[", "http", "```", "From [")
MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 100


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (ValueError, TypeError):
        return None


def _is_sole_numeric(items: List[Any]) -> bool:
    return len(items) == 1 and NUMERIC.match(str(items[0]).strip()) is not None


def _shaped(value: Any, expect: Shape) -> Optional[Any]:
    """Return `value` if it has the expected shape, unwrapping {"salons": [...]}."""
    if expect is Shape.RECORD:
        return value if isinstance(value, dict) else None
    if isinstance(value, dict):
        for key in LIST_KEYS:
            if isinstance(value.get(key), list):
                value = value[key]
                break
        else:
            return None
    if isinstance(value, list) and value and not _is_sole_numeric(value):
        return value
    return None


def _parse_as(text: str, expect: Shape, strategy: str) -> Optional[ExtractionResult]:
    value = _shaped(_loads(text.strip()), expect)
    if value is None:
        return None
    return ExtractionResult(kind=expect, value=value, strategy=strategy)


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index of the bracket closing the one at `start`, ignoring brackets inside strings."""
    opener = text[start]
    closer = "}" if opener == "{" else "]"
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
    return None


def direct_parse(text: str, expect: Shape) -> Optional[ExtractionResult]:
    trimmed = text.strip()
    if not trimmed.startswith(("{", "[")):
        return None
    return _parse_as(trimmed, expect, "direct_parse")


def strip_reasoning_wrapper(text: str, expect: Shape) -> Optional[ExtractionResult]:
    if THINK_OPEN not in text or THINK_CLOSE not in text:
        return None
    after = text[text.rindex(THINK_CLOSE) + len(THINK_CLOSE):].strip()
    if not after:
        return None
    return _parse_as(after, expect, "strip_reasoning_wrapper")


def fenced_block(text: str, expect: Shape) -> Optional[ExtractionResult]:
    match = FENCED_BLOCK.search(text)
    if not match:
        return None
    return _parse_as(match.group(1), expect, "fenced_block")


def _scan_record(text: str) -> Optional[Dict[str, Any]]:
    best: Optional[Dict[str, Any]] = None
    for start in (m.start() for m in re.finditer(r"\{", text)):
        end = _balanced_end(text, start)
        if end is None:
            continue
        candidate = text[start:end + 1]
        if NAME_KEY not in candidate:
            continue
        parsed = _loads(candidate)
        if not isinstance(parsed, dict) or not parsed.get("name"):
            continue
        if best is None or len(parsed) > len(best):
            best = parsed
    return best


def _scan_name_list(text: str) -> Optional[List[Any]]:
    for match in ARRAY_OF_STRINGS_START.finditer(text):
        end = _balanced_end(text, match.start())
        if end is None:
            continue
        parsed = _shaped(_loads(text[match.start():end + 1]), Shape.NAME_LIST)
        if parsed is not None:
            return parsed
        logger.debug(f"✗ Rejected array candidate at offset {match.start()}")

    # Fallback: the last bracketed span, rejecting footnote markers like [38]
    start, end = text.rfind("["), text.rfind("]")
    if start != -1 and end > start:
        parsed = _loads(text[start:end + 1])
        if isinstance(parsed, list) and _is_sole_numeric(parsed):
            logger.debug(f"✗ Rejected reference number array: {parsed}")
            return None
        return _shaped(parsed, Shape.NAME_LIST)
    return None


def balanced_scan(text: str, expect: Shape) -> Optional[ExtractionResult]:
    value = _scan_record(text) if expect is Shape.RECORD else _scan_name_list(text)
    if value is None:
        return None
    return ExtractionResult(kind=expect, value=value, strategy="balanced_scan")


def clean_list_line(line: str) -> str:
    """Strip list markers, emphasis, quotes and trailing punctuation from one line."""
    cleaned = EMPHASIS.sub("", line.strip())
    for marker in LIST_MARKERS:
        cleaned = marker.sub("", cleaned)
    cleaned = TRAILING_PUNCTUATION.sub("", cleaned.strip())
    cleaned = SURROUNDING_QUOTES.sub("", cleaned)
    cleaned = TRAILING_PUNCTUATION.sub("", cleaned)
    return cleaned.strip()


def _looks_like_name(candidate: str) -> bool:
    if not (MIN_NAME_LENGTH <= len(candidate) <= MAX_NAME_LENGTH):
        return False
    if NUMERIC.match(candidate) or not re.search(r"[A-Za-z]", candidate):
        return False
    if candidate.lower() in GENERIC_TERMS:
        return False
    return first_match(candidate, NAME_REJECTION_PATTERNS) is None


def line_heuristic(text: str, expect: Shape) -> Optional[ExtractionResult]:
    if expect is not Shape.NAME_LIST:
        return None
    body = THINK_BLOCK.sub("", text)
    if not body.strip():
        body = text

    names: List[str] = []
    seen = set()
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(SKIPPED_LINE_PREFIXES):
            continue
        candidate = clean_list_line(stripped)
        if not _looks_like_name(candidate):
            continue
        key = " ".join(candidate.lower().split())
        if key in seen:
            continue
        seen.add(key)
        names.append(candidate)

    if not names:
        return None
    logger.debug(f"✓ Extracted {len(names)} names using line parsing")
    return ExtractionResult(kind=Shape.NAME_LIST, value=names, strategy="line_heuristic")


def _span_of(text: str, expect: Shape) -> Optional[Any]:
    opener, closer = ("{", "}") if expect is Shape.RECORD else ("[", "]")
    start, end = text.find(opener), text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return _shaped(_loads(text[start:end + 1]), expect)


def opposite_shape(text: str, expect: Shape) -> Optional[ExtractionResult]:
    other = expect.opposite
    for strategy in STRUCTURAL_STRATEGIES:
        result = strategy(text, other)
        if result is not None:
            return ExtractionResult(kind=other, value=result.value, strategy="opposite_shape")
    value = _span_of(text, other)
    if value is None:
        return None
    return ExtractionResult(kind=other, value=value, strategy="opposite_shape")


STRUCTURAL_STRATEGIES: Tuple[Strategy, ...] = (
    direct_parse,
    strip_reasoning_wrapper,
    fenced_block,
    balanced_scan,
)

CASCADE: Tuple[Strategy, ...] = STRUCTURAL_STRATEGIES + (line_heuristic, opposite_shape)


def _excerpt(text: str, size: int = 500) -> str:
    if len(text) <= size * 2:
        return text
    return f"{text[:size]} ... {text[-size:]}"


def extract(raw_text: str, expect: Shape, strategies: Tuple[Strategy, ...] = CASCADE) -> ExtractionResult:
    """
    Run the cascade over `raw_text`.

    Args:
        raw_text: Upstream response text.
        expect: Shape the caller asked the upstream service for.
        strategies: Ordered strategies; the first non-None result wins.

    Returns:
        ExtractionResult: Parsed value plus the name of the strategy that produced it.

    Raises:
        UnrecoverableParseError: If every strategy abstains.
    """
    text = raw_text or ""
    logger.debug(
        f"🔎 Extracting {expect.value} from {len(text)} chars"
        f"{' (reasoning tags)' if THINK_CLOSE in text else ''}"
        f"{' (code fences)' if '```' in text else ''}"
    )
    for strategy in strategies:
        result = strategy(text, expect)
        if result is not None:
            logger.debug(f"✓ {strategy.__name__} produced a {result.kind.value}")
            return result
        logger.debug(f"✗ {strategy.__name__} abstained")

    logger.error(f"❌ All parsing strategies failed for {len(text)} chars of content")
    raise UnrecoverableParseError(expect.value, _excerpt(text))
