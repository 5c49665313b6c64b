"""Schemas related to OAuth flows."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackParams(BaseModel):
    """Query parameters Canva sends to the redirect URI."""

    code: Optional[str] = Field(None, description="Authorization code returned by Canva.")
    state: Optional[str] = Field(None, description="State token issued when starting OAuth.")
    error: Optional[str] = None
    error_description: Optional[str] = None


__all__ = ["OAuthCallbackParams"]
