"""Thread-role detection: reply/forward depth, clean subject, fresh body.

Independent of classification. The classifier uses ``ThreadContext`` to decide
whether a RE:/FW: message still says something new.
"""

import re
from dataclasses import dataclass

from shiplink.schemas.classification import ThreadRole

_PREFIX = re.compile(r"^\s*(re|fw|fwd|aw|wg|tr)\s*(\[\d+\])?\s*:\s*", re.IGNORECASE)

# Lines that start the quoted history of a reply or forward.
QUOTE_MARKERS = [
    re.compile(r"^\s*On .{1,200}wrote:\s*$", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*-{2,}\s*Original Message\s*-{2,}", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*-{2,}\s*Forwarded message\s*-{2,}", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*Begin forwarded message:", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*From:\s.+\n\s*(Sent|Date):\s.+\n(\s*To:\s.*\n)?(\s*Cc:\s.*\n)?\s*Subject:", re.IGNORECASE | re.MULTILINE),
    re.compile(r"^\s*_{10,}\s*$", re.MULTILINE),
]

_QUOTED_LINE = re.compile(r"^\s*>")

# Replies that carry no information of their own.
_ACKNOWLEDGEMENTS = re.compile(
    r"^(noted|thanks?|thank you|thx|received|well received|ok(ay)?|acknowledged|"
    r"pfa|please find attached|see below|fyi|dear\s+\w+)[\s,.!]*",
    re.IGNORECASE,
)
_SIGNATURE = re.compile(r"^\s*(best regards|kind regards|regards|br|thanks & regards|cheers)\b", re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class ThreadContext:
    role: ThreadRole
    depth: int
    clean_subject: str
    fresh_body: str
    quoted_body: str

    @property
    def is_reply_or_forward(self) -> bool:
        return self.role is not ThreadRole.ORIGINAL

    def has_new_content(self, min_chars: int = 40) -> bool:
        """Whether the fresh segment says more than a greeting or acknowledgement."""
        text = _SIGNATURE.split(self.fresh_body, maxsplit=1)[0]
        text = _ACKNOWLEDGEMENTS.sub("", text.strip())
        return len(re.sub(r"\s+", " ", text).strip()) >= min_chars


def strip_prefixes(subject: str) -> tuple[str, int, ThreadRole]:
    """Remove stacked RE:/FW: prefixes.

    Returns (clean_subject, depth, role). The role is taken from the outermost
    prefix: the message in hand is a forward if its own prefix is FW.
    """
    text = subject or ""
    depth = 0
    role = ThreadRole.ORIGINAL
    while True:
        match = _PREFIX.match(text)
        if not match:
            break
        if depth == 0:
            role = ThreadRole.REPLY if match.group(1).lower() in ("re", "aw") else ThreadRole.FORWARD
        depth += 1
        text = text[match.end():]
    return text.strip(), depth, role


def split_body(body: str) -> tuple[str, str]:
    """Split a body into (fresh, quoted) at the earliest quote marker."""
    if not body:
        return "", ""

    cut = len(body)
    for marker in QUOTE_MARKERS:
        match = marker.search(body)
        if match and match.start() < cut:
            cut = match.start()

    lines = body[:cut].splitlines(keepends=True)
    for offset, line in enumerate(lines):
        if _QUOTED_LINE.match(line):
            cut = sum(len(previous) for previous in lines[:offset])
            break

    return body[:cut].strip(), body[cut:].strip()


def analyze_thread(subject: str | None, body: str | None) -> ThreadContext:
    clean_subject, depth, role = strip_prefixes(subject or "")
    fresh, quoted = split_body(body or "")
    return ThreadContext(
        role=role,
        depth=depth,
        clean_subject=clean_subject,
        fresh_body=fresh,
        quoted_body=quoted,
    )
