"""
============================================================================
UPTIME ENGINE - VALIDATION UTILITY
============================================================================
Result container and field checks used by monitor config validation.
============================================================================
"""

from typing import Any, Dict, List, Optional


# ============================================================================
# VALIDATION RESULT
# ============================================================================

class ValidationResult:
    """
    Class to hold validation results with detailed information.
    """

    def __init__(self, is_valid: bool, message: str = "", errors: Optional[List[str]] = None):
        """
        Initialize validation result.

        Args:
            is_valid: Whether validation passed
            message: Validation message
            errors: List of error messages
        """
        self.is_valid = is_valid
        self.message = message
        self.errors = errors or []

    @classmethod
    def from_errors(cls, errors: List[str], ok_message: str = "Configuration is valid") -> "ValidationResult":
        """Build a result from collected errors; empty means valid."""
        if errors:
            return cls(False, errors[0], list(errors))
        return cls(True, ok_message)

    def __bool__(self):
        """Allow using result as boolean."""
        return self.is_valid

    def __str__(self):
        """String representation."""
        if self.is_valid:
            return f"Valid: {self.message}"
        errors_str = ", ".join(self.errors) if self.errors else "Unknown error"
        return f"Invalid: {self.message} - {errors_str}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_valid": self.is_valid,
            "message": self.message,
            "errors": self.errors
        }


# ============================================================================
# FIELD CHECKS
# ============================================================================

def is_http_url(url: Optional[str]) -> bool:
    """Loose check: the target must start with http (covers https)."""
    return bool(url) and url.strip().lower().startswith("http")
