"""Subscription domain Pydantic schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionCreate(BaseModel):
    """Request body for registering a subscription."""

    resource_path: str = Field(min_length=1, max_length=1024)
    change_types: Optional[str] = Field(default=None, max_length=64)
    expiration_minutes: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(extra="ignore")


class SubscriptionListParams(BaseModel):
    """Query parameters for listing subscriptions."""

    include_inactive: bool = True
    remote: bool = False


__all__ = ["SubscriptionCreate", "SubscriptionListParams"]
