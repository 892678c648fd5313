"""Pydantic models for API request/response contracts."""
from .requests import AnalyzeRequest, ChatMessage
from .responses import ErrorResponse, HealthResponse, ReadinessResponse
