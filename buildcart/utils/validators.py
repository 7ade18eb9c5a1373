"""Input validation helpers for domains and generated file names."""

import re

from buildcart.core.exceptions import ValidationError

# One or more labels followed by an alphabetic TLD
DOMAIN_REGEX = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)

# Product handles and IDs become file names under product/
PAGE_NAME_REGEX = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")

HEX_COLOR_REGEX = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")

FONT_NAME_REGEX = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 -]{0,63}$")


def is_valid_domain(domain: str) -> bool:
    """Check a lowercase domain name against the syntactic pattern."""
    return len(domain) <= 253 and bool(DOMAIN_REGEX.match(domain))


def validate_domain(domain: str | None) -> str:
    """Validate and normalize a domain name.

    Args:
        domain: Domain name as supplied by the caller

    Returns:
        Lowercase domain without surrounding whitespace or trailing dot

    Raises:
        ValidationError: If the domain is empty or malformed
    """
    if not domain or not domain.strip():
        raise ValidationError("Domain name cannot be empty")

    cleaned = domain.strip().lower().rstrip(".")
    if not is_valid_domain(cleaned):
        raise ValidationError("Invalid domain format", {"domain": domain})

    return cleaned


def is_safe_page_name(name: str) -> bool:
    """Check that a name can be used as a single path segment."""
    return bool(PAGE_NAME_REGEX.match(name))
