"""
Pydantic models for API request bodies.
"""

from pydantic import BaseModel, ConfigDict, Field


class SubmitProblemRequest(BaseModel):
    """Body of POST /api/problem/{id}."""

    model_config = ConfigDict(extra="ignore")

    problem: str = Field(..., min_length=1, description="Problem document (Markdeep/HTML)")
    verification: str = Field(..., min_length=1, description="Write password (plaintext)")


class DeleteProblemRequest(BaseModel):
    """Body of DELETE /api/problem/{id}."""

    model_config = ConfigDict(extra="ignore")

    verification: str = Field(..., min_length=1, description="Write password (plaintext)")


# Diagnostic returned when a field fails validation
MISSING_FIELD_MESSAGES = {
    "problem": "Missing problem data",
    "verification": "Missing verification",
}
