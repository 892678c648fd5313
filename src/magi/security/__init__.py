"""Security utilities -- input validation at the system boundary."""
from .validators import (
    ValidationError,
    collect_analyze_errors,
    serialized_size,
    validate_in_choices,
    validate_length,
    validate_not_empty,
)
