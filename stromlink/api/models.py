"""API models for FastAPI endpoints."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class SwitchSummary(BaseModel):
    """A discovered switch."""

    id: str
    name: str
    type: Optional[str] = None
    ip: str
    reachable: bool
    plugin_id: str
    last_use_date: Optional[float] = None


class SwitchListResponse(BaseModel):
    devices: List[SwitchSummary]
    total: int


class SwitchStateResponse(BaseModel):
    """Current state of a switch."""

    id: str
    relay: bool
    power: Optional[float] = None
    power_consumption: Optional[str] = Field(None, description="Watts with one decimal place")


class PowerRequest(BaseModel):
    on: bool = Field(..., description="Switch the relay on (true) or off (false)")


class CommandResult(BaseModel):
    """Command execution result."""

    success: bool
    message: Optional[str] = None


class DiscoveryResult(BaseModel):
    message: str
    cleared_plugins: int


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    plugins: Optional[Dict[str, Any]] = None
