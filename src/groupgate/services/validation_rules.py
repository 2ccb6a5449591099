"""Validation rules: deterministic checks for identification answers.

Each rule maps raw text to a ``ValidationResult``. Rules never send anything;
the session engine delivers ``reason`` to the user.
"""

import re
from dataclasses import dataclass
from typing import Callable

MAX_NAME_LENGTH = 100
MIN_GRADE = 1
MAX_GRADE = 11

# <integer><letters>, letters in any alphabet
CLASS_LABEL_PATTERN = re.compile(r"^(\d+)([^\W\d_]+)$")


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating one answer."""
    ok: bool
    value: str | None = None
    reason: str | None = None

    @classmethod
    def accept(cls, value: str) -> "ValidationResult":
        return cls(ok=True, value=value)

    @classmethod
    def reject(cls, reason: str) -> "ValidationResult":
        return cls(ok=False, reason=reason)


Validator = Callable[[str], ValidationResult]


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def name_rule(label: str, max_length: int = MAX_NAME_LENGTH) -> Validator:
    """Build a rule accepting any trimmed text shorter than *max_length*."""

    def _validate(raw_text: str) -> ValidationResult:
        text = raw_text.strip()
        if not text:
            return ValidationResult.reject(f"{label}: empty!")
        if len(text) >= max_length:
            return ValidationResult.reject(f"{label}: too long!")
        return ValidationResult.accept(text)

    return _validate


def validate_class_label(raw_text: str) -> ValidationResult:
    """Accept labels like ``5A`` or ``10b``; the grade must be within 1..11."""
    text = raw_text.strip()
    match = CLASS_LABEL_PATTERN.match(text)
    if not match:
        return ValidationResult.reject(
            "Class must look like NUMBERLETTER, for example: 5A, 10B, 8V"
        )

    grade = int(match.group(1))
    if grade < MIN_GRADE:
        return ValidationResult.reject("Class cannot be less than 0. Are you from kindergarten?")
    if grade > MAX_GRADE:
        return ValidationResult.reject(
            f"Class cannot be greater than {MAX_GRADE}. Are you from university?"
        )

    return ValidationResult.accept(text.upper())


def accept_text(raw_text: str) -> ValidationResult:
    """Accept any non-empty text verbatim (used for the greeting editor)."""
    if not raw_text.strip():
        return ValidationResult.reject("Send me some text.")
    return ValidationResult.accept(raw_text)


def non_text_reason(prompt_noun: str) -> str:
    """Reason given when a dialogue step receives something other than text."""
    return f"Send me your {prompt_noun} as text!"


validate_surname = name_rule("Surname")
validate_given_name = name_rule("Given name")
