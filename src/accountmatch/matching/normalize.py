"""Field normalisation for account matching.

Every function here is pure and idempotent: running a normalised value
through the same normaliser again returns it unchanged.  The outputs are
used both as comparison keys during scoring and as the indexed
``normalized_*`` columns of the record store.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from unidecode import unidecode

from accountmatch.matching.models import Account, NormalizedAccount

# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

COMPANY_SUFFIXES: tuple[str, ...] = (
    "ltd", "limited", "pty", "inc", "incorporated", "llc", "plc", "llp",
    "group", "holdings", "corporation", "corp", "sa", "nv", "ab", "gmbh",
    "ag", "sarl", "sas", "pte", "pvt", "lp", "co", "company",
)

# Anchored at the end and requiring a preceding word so a bare
# "Company" or "Group" is never reduced to an empty name.
_SUFFIX_PATTERN = re.compile(r"\s+(?:" + "|".join(COMPANY_SUFFIXES) + r")$")
_CONJUNCTION_PATTERN = re.compile(r"\band\b")

STREET_ABBREVIATIONS: dict[str, str] = {
    "st": "street",
    "rd": "road",
    "ave": "avenue",
    "blvd": "boulevard",
    "ln": "lane",
    "dr": "drive",
    "ct": "court",
    "pl": "place",
    "trl": "trail",
    "pkwy": "parkway",
    "hwy": "highway",
    "cres": "crescent",
    "tce": "terrace",
}

GENERIC_EMAIL_DOMAINS: frozenset[str] = frozenset({
    "gmail.com", "yahoo.com", "yahoo.co.uk", "hotmail.com", "hotmail.co.uk",
    "outlook.com", "live.com", "msn.com", "aol.com", "icloud.com",
    "mail.com", "protonmail.com", "zoho.com", "yandex.com", "gmx.com",
    "googlemail.com", "me.com", "mac.com", "btinternet.com", "sky.com",
})


@dataclass(frozen=True)
class PhonePrefix:
    international: str
    local: str
    length: int  # significant digits kept


PHONE_PREFIXES: dict[str, PhonePrefix] = {
    "australia": PhonePrefix("61", "0", 9),
    "new zealand": PhonePrefix("64", "0", 8),
    "united kingdom": PhonePrefix("44", "0", 10),
    "united states": PhonePrefix("1", "1", 10),
}

_COUNTRY_ALIASES: dict[str, str] = {
    "au": "australia",
    "aus": "australia",
    "nz": "new zealand",
    "nzl": "new zealand",
    "uk": "united kingdom",
    "gb": "united kingdom",
    "gbr": "united kingdom",
    "england": "united kingdom",
    "us": "united states",
    "usa": "united states",
}

DEFAULT_PHONE_PREFIX = PHONE_PREFIXES["australia"]

MIN_PHONE_DIGITS = 5


# ---------------------------------------------------------------------------
# Normalisers
# ---------------------------------------------------------------------------

def normalize_string(value: str | None) -> str:
    """Transliterate, lowercase, drop punctuation and collapse whitespace."""
    if not value:
        return ""
    text = unidecode(str(value)).lower()
    text = re.sub(r"[^a-z0-9\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_company_name(name: str | None) -> str:
    """Normalise a company name for comparison.

    Legal-entity suffixes are stripped from the end repeatedly, so
    "Acme Pty Ltd" becomes "acme", and the word "and" (plus "&", which
    :func:`normalize_string` already drops) is removed.
    """
    text = normalize_string(name)
    while True:
        stripped = _SUFFIX_PATTERN.sub("", text)
        stripped = _CONJUNCTION_PATTERN.sub("", stripped)
        stripped = re.sub(r"\s+", " ", stripped).strip()
        if stripped == text:
            return text
        text = stripped


def normalize_address(address: str | None) -> str:
    """Normalise a street address and expand street-type abbreviations."""
    text = normalize_string(address)
    return " ".join(STREET_ABBREVIATIONS.get(word, word) for word in text.split())


def resolve_phone_prefix(country: str | None) -> PhonePrefix:
    """Find the dialling prefixes for *country*.

    Exact names and short codes are tried first, then a substring match on
    full country names; anything else gets the Australian default.
    """
    key = (country or "").strip().lower()
    if not key:
        return DEFAULT_PHONE_PREFIX
    if key in PHONE_PREFIXES:
        return PHONE_PREFIXES[key]
    if key in _COUNTRY_ALIASES:
        return PHONE_PREFIXES[_COUNTRY_ALIASES[key]]
    for name, prefix in PHONE_PREFIXES.items():
        if name in key or key in name:
            return prefix
    return DEFAULT_PHONE_PREFIX


def normalize_phone(phone: str | None, country: str | None = None) -> str:
    """Reduce a phone number to its country-specific significant digits.

    Numbers with fewer than five digits are too unreliable to compare and
    normalise to ``""``.  A leading international or trunk prefix is only
    stripped while at least the expected number of significant digits
    remains, which keeps the function idempotent.
    """
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < MIN_PHONE_DIGITS:
        return ""

    prefix = resolve_phone_prefix(country)
    if digits.startswith(prefix.international) and (
        len(digits) - len(prefix.international) >= prefix.length
    ):
        digits = digits[len(prefix.international):]
    elif digits.startswith(prefix.local) and len(digits) - len(prefix.local) >= prefix.length:
        digits = digits[len(prefix.local):]

    return digits[-prefix.length:]


def normalize_website(url: str | None) -> str:
    """Reduce a URL to a bare domain: no scheme, ``www.``, path or query.

    Repeated schemes and ``www.`` labels are stripped until none remain.
    """
    if not url:
        return ""
    text = url.strip().lower()
    while True:
        stripped = re.sub(r"^[a-z]+://", "", text)
        stripped = re.sub(r"^www\.", "", stripped).strip()
        if stripped == text:
            break
        text = stripped
    return re.split(r"[/?#]", text, maxsplit=1)[0].strip()


def extract_email_domain(
    email: str | None,
    generic_domains: frozenset[str] = GENERIC_EMAIL_DOMAINS,
) -> str | None:
    """Return the domain of a corporate email address.

    Returns ``None`` for malformed addresses and for free-mail providers,
    which say nothing about the company behind the address.
    """
    if not email or "@" not in email:
        return None
    domain = normalize_website(email.rsplit("@", 1)[1])
    if not domain or domain in generic_domains:
        return None
    return domain


def derive_domain(website: str | None, email: str | None) -> str:
    """Website domain, falling back to a non-generic email domain."""
    if website:
        return normalize_website(website)
    return extract_email_domain(email) or ""


def normalize_account(account: Account, country: str | None = None) -> NormalizedAccount:
    """Derive the comparison keys for *account*.

    The phone is normalised for *country* when given, otherwise for the
    account's own billing country.
    """
    return NormalizedAccount(
        normalized_name=normalize_company_name(account.name),
        normalized_phone=normalize_phone(account.phone, country or account.billing_country),
        normalized_website=derive_domain(account.website, account.email),
        normalized_billing_street=normalize_address(account.billing_street),
    )
