"""
Heuristic candidate identity extraction from an application email + resume text.

Regex-based and deliberately forgiving: every field has a placeholder
default, so a badly formatted resume still yields a storable candidate.
"""
import re

from app.models.schemas import CandidateInfo

UNKNOWN = "Unknown"
UNKNOWN_POSITION = "Unknown Position"

_EMAIL_RE = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
_PHONE_RE = re.compile(r"(\+?\d{1,3}[-.\s]?)?\(?(\d{3})\)?[-.\s]?(\d{3})[-.\s]?(\d{4})")
_SUBJECT_POSITION_RE = re.compile(r".*application for", re.IGNORECASE | re.DOTALL)
_BODY_POSITION_RE = re.compile(r"applying for\s+(.+)", re.IGNORECASE)

_NAME_SCAN_LINES = 5


def extract_candidate_info(
    sender: str,
    subject: str,
    body: str,
    resume_text: str,
) -> CandidateInfo:
    """Best-effort {first_name, last_name, email, phone, position}; never raises."""
    subject = subject or ""
    body = body or ""
    resume_text = resume_text or ""

    first_name, last_name = _extract_name(resume_text)
    return CandidateInfo(
        first_name=first_name,
        last_name=last_name,
        email=_first_match(_EMAIL_RE, resume_text, body) or (sender or ""),
        phone=_first_match(_PHONE_RE, resume_text, body) or "",
        position=_extract_position(subject, body),
    )


def _extract_name(resume_text: str) -> tuple[str, str]:
    lines = [line.strip() for line in resume_text.splitlines() if line.strip()]
    for line in lines[:_NAME_SCAN_LINES]:
        if len(line) <= 2 or "@" in line:
            continue
        tokens = line.split()
        if len(tokens) >= 2:
            return tokens[0], " ".join(tokens[1:])
    return UNKNOWN, UNKNOWN


def _first_match(pattern: re.Pattern, *texts: str) -> str | None:
    for text in texts:
        match = pattern.search(text)
        if match:
            return match.group(0).strip()
    return None


def _extract_position(subject: str, body: str) -> str:
    if "application for" in subject.lower():
        position = _SUBJECT_POSITION_RE.sub("", subject, count=1).strip()
        return position or UNKNOWN_POSITION

    if "applying for" in body.lower():
        match = _BODY_POSITION_RE.search(body)
        if match and match.group(1).strip():
            return match.group(1).strip()

    return UNKNOWN_POSITION
