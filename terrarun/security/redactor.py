"""
Redaction of sensitive values from captured command output.
"""

from typing import Iterable, List

REDACTED = "[REDACTED]"


class OutputRedactor:
    """
    Redacts sensitive values from text output.

    Use this to sanitize terraform output before it is logged, streamed
    to a callback or stored in a result, so that sensitive variable
    values never leave the process.

    Example:
        >>> redactor = OutputRedactor(["secret123"])
        >>> redactor.redact("Connecting with key: secret123")
        'Connecting with key: [REDACTED]'
    """

    def __init__(self, sensitive_values: Iterable[str] = ()):
        self.sensitive_values: List[str] = []
        self.add_sensitive_values(sensitive_values)

    def add_sensitive_values(self, values: Iterable[str]):
        """Add values to the redaction list, ignoring empties and duplicates."""
        for value in values:
            if value and value not in self.sensitive_values:
                self.sensitive_values.append(value)
        # Longest first so that a value containing another is fully hidden
        self.sensitive_values.sort(key=len, reverse=True)

    def redact(self, text: str) -> str:
        """
        Replace any occurrence of sensitive values with [REDACTED].

        Uses exact, case-sensitive string matching (not regex).
        """
        if not text:
            return text

        redacted = text
        for sensitive_value in self.sensitive_values:
            redacted = redacted.replace(sensitive_value, REDACTED)

        return redacted

    def clear(self):
        """Forget all sensitive values."""
        self.sensitive_values.clear()
