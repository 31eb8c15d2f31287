"""
Pydantic models for structured correction detection.

These models define the output format the tutor's language model must
return when it reviews a learner utterance, so that every correction can be
stored as a ``Correction`` row without further parsing.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class ErrorCategory(str, Enum):
    """Error-type labels stored on corrections."""

    GRAMMAR = "Grammar"
    VOCABULARY = "Vocabulary"
    PRONUNCIATION = "Pronunciation"
    SPELLING = "Spelling"
    OTHER = "Other"


class CorrectionSeverity(str, Enum):
    """How much an error gets in the way of being understood."""

    LOW = "Low"  # Doesn't affect comprehension
    MEDIUM = "Medium"  # May cause confusion
    HIGH = "High"  # Significantly impacts comprehension


class DetectedCorrection(BaseModel):
    """A single error found in the learner's utterance."""

    error_type: ErrorCategory = Field(..., description="Category of the error")
    severity: CorrectionSeverity = Field(
        default=CorrectionSeverity.MEDIUM, description="How serious this error is"
    )
    original_text: str = Field(..., description="The incorrect fragment")
    corrected_text: str = Field(..., description="The corrected fragment")
    explanation: str = Field(
        ..., description="Short, encouraging explanation of the fix"
    )


class CorrectionReport(BaseModel):
    """All corrections for one learner utterance; empty when it was fine."""

    corrections: List[DetectedCorrection] = Field(
        default=[], description="Errors found, in the order they appear"
    )
