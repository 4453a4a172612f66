"""
Email address validation for newsletter signups.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from email_validator import EmailNotValidError
from email_validator import validate_email as check_email_syntax

MAX_EMAIL_LENGTH = 254

BLOCKED_DOMAINS = frozenset({
    "10minutemail.com",
    "mailinator.com",
    "guerrillamail.com",
    "tempmail.org",
    "yopmail.com",
    "throwaway.email",
    "maildrop.cc",
    "temp-mail.org",
    "sharklasers.com",
    "spam4.me",
    "tempail.com",
})

DOMAIN_CORRECTIONS = {
    "gmail.co": "gmail.com",
    "gmial.com": "gmail.com",
    "gmai.com": "gmail.com",
    "yahooo.com": "yahoo.com",
    "yaho.com": "yahoo.com",
    "hotmial.com": "hotmail.com",
    "hotmil.com": "hotmail.com",
}


@dataclass
class EmailValidationResult:
    is_valid: bool
    email: Optional[str] = None
    error: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def mask_email(email: str) -> str:
    """j***@example.com, for logs."""
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"


def suggest_corrections(email: str) -> List[str]:
    local, _, domain = email.partition("@")
    if not domain:
        return []
    suggestions = []
    if domain in DOMAIN_CORRECTIONS:
        suggestions.append(f"{local}@{DOMAIN_CORRECTIONS[domain]}")
    elif "." not in domain:
        suggestions.append(f"{local}@{domain}.com")
    return suggestions[:3]


def validate_email(email: Optional[str]) -> EmailValidationResult:
    """
    Normalize and validate an email address.

    Checks, in order: presence, length, format (with typo suggestions) and
    disposable-domain blocklist.
    """
    if not isinstance(email, str):
        return EmailValidationResult(False, error="Email address is required")

    sanitized = normalize_email(email)

    if not sanitized:
        return EmailValidationResult(False, error="Email address is required")

    if len(sanitized) > MAX_EMAIL_LENGTH:
        return EmailValidationResult(
            False, error=f"Email address is too long (max {MAX_EMAIL_LENGTH} characters)"
        )

    try:
        # Same rules as the EmailStr request fields
        check_email_syntax(sanitized, check_deliverability=False)
    except EmailNotValidError:
        return EmailValidationResult(
            False,
            error="Please enter a valid email address",
            suggestions=suggest_corrections(sanitized),
        )

    domain = sanitized.split("@")[1]
    if domain in DOMAIN_CORRECTIONS:
        return EmailValidationResult(
            False,
            error="Please enter a valid email address",
            suggestions=suggest_corrections(sanitized),
        )

    if domain in BLOCKED_DOMAINS:
        return EmailValidationResult(False, error="Temporary email addresses are not allowed")

    return EmailValidationResult(True, email=sanitized)
