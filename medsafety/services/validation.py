"""
Input validation shared by the evaluator and the prescribing workflow
"""
from typing import Optional

from medsafety.exceptions import ValidationError


def require_id(value, field: str) -> int:
    """Coerce an id to int; None, blanks, bools and non-numeric text are rejected"""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id", field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id", field=field)


def require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()
