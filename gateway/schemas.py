"""
API Gateway — Pydantic Response Schemas
=========================================

What:  Pydantic models for the JSON bodies the gateway itself produces.
Why:   One definition of the error shape shared by every error path, and
       OpenAPI documentation for the gateway's own health route.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ErrorResponse(BaseModel):
    """
    What:  Uniform error body returned for every classified error.
    Shape: {"message", "statusCode", "status", "comingFrom"}

    Field names are snake_case in Python and camelCase on the wire, matching
    what downstream services already return so clients see one format.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(description="Human-readable, client-safe error description")
    status_code: int = Field(ge=100, le=599, description="HTTP status code")
    status: str = Field(default="error", description="Always 'error'")
    coming_from: str = Field(description="Component that raised the error")


class HealthResponse(BaseModel):
    """
    What:  Gateway liveness payload.
    Who:   Returned by GET /gateway-health for load balancer probes.
    """
    status: str = Field(description="Always 'ok' when the process can answer")
    message: str = Field(description="Human-readable status line")
    version: str = Field(description="Gateway package version")
    uptime_seconds: float = Field(description="Seconds since the route module loaded")
