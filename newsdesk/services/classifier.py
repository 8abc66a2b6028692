import re
from typing import List, Optional, Tuple

from newsdesk.models.schemas import Action, ExtractedInfo, ParsedResponse

EXACT = 0.9
WHOLE_MESSAGE = 0.95
LOOSE = 0.75
AMBIGUOUS_CHECK = 0.85

CHECK_MARK = "✅"

# Highest first. A message matching several classes takes the first one here.
PRECEDENCE = [Action.ACCEPT, Action.DECLINE, Action.COMPLETE, Action.DELAY, Action.PROGRESS]


def _w(pattern: str) -> str:
    # word-ish boundaries that also hold next to emoji and apostrophes
    return rf"(?<![\w']){pattern}(?![\w'])"


# (action, regex, strength)
SIGNALS: List[Tuple[Action, str, float]] = [
    # accept
    (Action.ACCEPT, _w(r"accept(?:ed)?"), EXACT),
    (Action.ACCEPT, _w(r"confirm(?:ed)?"), EXACT),
    (Action.ACCEPT, _w(r"yes"), EXACT),
    (Action.ACCEPT, _w(r"ok"), EXACT),
    (Action.ACCEPT, _w(r"okay"), EXACT),
    (Action.ACCEPT, _w(r"sure"), EXACT),
    (Action.ACCEPT, _w(r"will do"), EXACT),
    (Action.ACCEPT, _w(r"on it"), EXACT),
    (Action.ACCEPT, _w(r"got it"), EXACT),
    (Action.ACCEPT, _w(r"no problem"), EXACT),
    (Action.ACCEPT, _w(r"no worries"), EXACT),
    (Action.ACCEPT, r"👍", EXACT),
    # decline
    (Action.DECLINE, _w(r"declined?"), EXACT),
    (Action.DECLINE, _w(r"no"), EXACT),
    (Action.DECLINE, _w(r"nope"), EXACT),
    (Action.DECLINE, _w(r"can't"), EXACT),
    (Action.DECLINE, _w(r"cannot"), EXACT),
    (Action.DECLINE, _w(r"unable"), EXACT),
    (Action.DECLINE, _w(r"not available"), EXACT),
    (Action.DECLINE, _w(r"sorry"), EXACT),
    (Action.DECLINE, r"❌", EXACT),
    # progress
    (Action.PROGRESS, _w(r"on my way"), EXACT),
    (Action.PROGRESS, _w(r"on the way"), EXACT),
    (Action.PROGRESS, _w(r"en route"), EXACT),
    (Action.PROGRESS, _w(r"started"), EXACT),
    (Action.PROGRESS, _w(r"working on it"), EXACT),
    (Action.PROGRESS, _w(r"in progress"), EXACT),
    (Action.PROGRESS, _w(r"arrived"), EXACT),
    (Action.PROGRESS, _w(r"at (?:the )?location"), EXACT),
    (Action.PROGRESS, _w(r"on site"), EXACT),
    (Action.PROGRESS, _w(r"going"), LOOSE),
    (Action.PROGRESS, _w(r"heading(?: there)?"), LOOSE),
    # complete
    (Action.COMPLETE, _w(r"done"), EXACT),
    (Action.COMPLETE, _w(r"finished"), EXACT),
    (Action.COMPLETE, _w(r"completed?"), EXACT),
    (Action.COMPLETE, _w(r"ready"), EXACT),
    (Action.COMPLETE, _w(r"submitted"), EXACT),
    (Action.COMPLETE, _w(r"wrapped up"), EXACT),
    # delay
    (Action.DELAY, _w(r"running late"), EXACT),
    (Action.DELAY, _w(r"will be late"), EXACT),
    (Action.DELAY, _w(r"need more time"), EXACT),
    (Action.DELAY, _w(r"delay(?:ed)?"), EXACT),
    (Action.DELAY, _w(r"need (?:an )?extension"), EXACT),
    (Action.DELAY, _w(r"will be (?:there |back )?in \d+\s*(?:mins?|minutes?|hrs?|hours?)"), LOOSE),
]

_COMPILED = [(action, re.compile(pattern), strength) for action, pattern, strength in SIGNALS]

BUTTON_ACTIONS = {
    "accept": Action.ACCEPT,
    "decline": Action.DECLINE,
    "started": Action.PROGRESS,
    "onway": Action.PROGRESS,
    "arrived": Action.PROGRESS,
    "done": Action.COMPLETE,
    "delay": Action.DELAY,
}

_AMOUNT = r"(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
BUDGET_PATTERNS = [
    re.compile(r"(?:(?<![a-z])(?:bd|bhd)|\$)\s*" + _AMOUNT),
    re.compile(_AMOUNT + r"\s*(?:(?:bd|bhd|dinars?)(?![a-z])|\$)"),
]
PHONE_PATTERN = re.compile(r"\+?\d+(?:[\s\-().]{1,3}\d+)*")
TASK_REF_PATTERN = re.compile(r"#([A-Za-z0-9]{8})(?![A-Za-z0-9])")


def _normalize(text: str) -> str:
    return text.replace("’", "'").lower().strip()


def _find_hits(text: str) -> List[Tuple[Action, float, int, int]]:
    hits = []
    for action, rx, strength in _COMPILED:
        for m in rx.finditer(text):
            hits.append((action, strength, m.start(), m.end()))

    # A hit inside a longer hit is dropped ("working on it" hides "on it").
    hits.sort(key=lambda h: h[3] - h[2], reverse=True)
    kept = []
    for hit in hits:
        _, _, start, end = hit
        if any(k[2] <= start and end <= k[3] for k in kept):
            continue
        kept.append(hit)
    return kept


def _is_whole_message(text: str, start: int, end: int) -> bool:
    rest = text[:start] + text[end:]
    return not re.sub(r"[\s.,!?]+", "", rest)


def extract_budget(text: str) -> Optional[float]:
    lowered = _normalize(text)
    candidates = []
    for rx in BUDGET_PATTERNS:
        for m in rx.finditer(lowered):
            value = float(m.group(1).replace(",", ""))
            if value > 0:
                candidates.append((m.start(), value))
    if not candidates:
        return None
    return min(candidates)[1]


def _phone_numbers(token: str):
    """
    Split a run of digit groups into numbers. A group of 7+ digits ends a
    number ("12345678 87654321" is two), and no number grows past 15 digits.
    """
    plus = token.startswith("+")
    current, last = "", ""
    for group in re.findall(r"\d+", token):
        if current and (len(last) >= 7 or len(current) + len(group) > 15):
            yield plus, current
            plus, current = False, ""
        current += group
        last = group
    if current:
        yield plus, current


def extract_contact(text: str) -> Optional[str]:
    for m in PHONE_PATTERN.finditer(text):
        for plus, digits in _phone_numbers(m.group(0)):
            if 7 <= len(digits) <= 15:
                return ("+" if plus else "") + digits
    return None


def extract_info(text: str) -> Optional[ExtractedInfo]:
    budget = extract_budget(text)
    contact = extract_contact(text)
    if budget is None and contact is None:
        return None
    return ExtractedInfo(budget=budget, contact=contact)


def extract_task_ref(text: str) -> Optional[str]:
    m = TASK_REF_PATTERN.search(text or "")
    return m.group(1).upper() if m else None


def classify(text: str) -> ParsedResponse:
    """
    Map a free-text employee reply to an action with a confidence score.

    Never raises: anything unrecognised comes back as UNKNOWN with 0 confidence.
    Budget/contact extraction runs regardless of the action.
    """
    if not isinstance(text, str):
        return ParsedResponse()

    normalized = _normalize(text)
    if not normalized:
        return ParsedResponse()

    info = extract_info(text)
    hits = _find_hits(normalized)
    by_action = {a: [h for h in hits if h[0] == a] for a in PRECEDENCE}

    ambiguous = False
    if CHECK_MARK in normalized:
        pos = normalized.index(CHECK_MARK)
        check_hit = (None, EXACT, pos, pos + len(CHECK_MARK))
        if by_action[Action.COMPLETE]:
            by_action[Action.COMPLETE].append((Action.COMPLETE,) + check_hit[1:])
        else:
            ambiguous = not hits
            by_action[Action.ACCEPT].append((Action.ACCEPT,) + check_hit[1:])

    for action in PRECEDENCE:
        matched = by_action[action]
        if not matched:
            continue
        if ambiguous:
            confidence = AMBIGUOUS_CHECK
        else:
            best = max(matched, key=lambda h: h[1])
            confidence = best[1]
            if best[1] == EXACT and _is_whole_message(normalized, best[2], best[3]):
                confidence = WHOLE_MESSAGE
        return ParsedResponse(
            action=action,
            confidence=confidence,
            extracted_info=info,
            ambiguous=ambiguous,
        )

    return ParsedResponse(action=Action.UNKNOWN, confidence=0.0, extracted_info=info)


def classify_button(payload: str) -> Tuple[ParsedResponse, Optional[str]]:
    """
    Returns: (parsed response, task id) for a quick-reply payload like "accept_AB12CD34".
    """
    parts = (payload or "").split("_", 1)
    if len(parts) < 2 or not parts[1]:
        return ParsedResponse(), None

    action = BUTTON_ACTIONS.get(parts[0].lower())
    task_id = parts[1].upper()
    if action is None:
        return ParsedResponse(), task_id
    return ParsedResponse(action=action, confidence=1.0), task_id
