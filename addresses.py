"""Address normalization and postal-code helpers."""
import re
from typing import NamedTuple, Optional


# Case-insensitive whole-word abbreviations expanded before geocoding
ABBREVIATIONS = {
    'Ngr': 'Nagar',
    'Rd': 'Road',
    'Col': 'Colony',
    'Ln': 'Lane',
    'Nr': 'Near',
    'Opp': 'Opposite',
    'Extn': 'Extension',
    'Stn': 'Station',
}

_ABBREVIATION_RES = [
    (re.compile(rf'\b{re.escape(short)}\b', re.IGNORECASE), full)
    for short, full in ABBREVIATIONS.items()
]
_REPEATED_COMMAS_RE = re.compile(r',(?:\s*,)+')
_WS_RE = re.compile(r'\s+')
# PIN codes are ASCII digits; \d also matches other scripts
_POSTAL_CODE_RE = re.compile(r'\b([0-9]{6})\b')


class ParsedAddress(NamedTuple):
    normalized: str
    postal_code: Optional[str]


def normalize_address(raw: Optional[str]) -> str:
    """
    Canonical form of a free-form address.

    Repeated commas are collapsed to one, whitespace runs become a single
    space, known abbreviations are expanded and the result is trimmed.
    Applying it twice gives the same string as applying it once.
    """
    text = str(raw or '')
    text = _REPEATED_COMMAS_RE.sub(', ', text)
    text = _WS_RE.sub(' ', text)
    for pattern, full in _ABBREVIATION_RES:
        text = pattern.sub(full, text)
    return text.strip()


def extract_postal_code(text: Optional[str]) -> Optional[str]:
    """Return the first standalone 6-digit PIN code in ``text``, if any."""
    match = _POSTAL_CODE_RE.search(str(text or ''))
    return match.group(1) if match else None


def parse_address(raw: Optional[str]) -> ParsedAddress:
    normalized = normalize_address(raw)
    return ParsedAddress(normalized, extract_postal_code(normalized))


def guess_city(normalized: str, region: str) -> Optional[str]:
    """
    Guess the city token written just before ``region``.

    Two shapes are recognised, tried in order:
        "..., Chennai 600041, Tamil Nadu"  (city, PIN code, region)
        "..., Chennai, Tamil Nadu"         (city between commas, region)
    """
    region_re = re.escape(region)
    patterns = (
        rf'([A-Za-z\s]+)\s+[0-9]{{6}}\s*,\s*{region_re}',
        rf',\s*([A-Za-z\s]+)\s*,\s*{region_re}',
    )
    for pattern in patterns:
        match = re.search(pattern, normalized, re.IGNORECASE)
        if match and match.group(1).strip():
            return _WS_RE.sub(' ', match.group(1)).strip()
    return None
