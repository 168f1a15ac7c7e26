"""Pydantic schemas for form definitions, submissions and API responses."""

from intake.schemas.forms import (
    EffectiveFieldMap,
    FieldCondition,
    FormDefinition,
    FormField,
    FormSection,
)
from intake.schemas.submissions import (
    LocationContext,
    SubmissionResult,
    ValidationResult,
)
