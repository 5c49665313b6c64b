"""
Pydantic models for the launch and return endpoints.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class LaunchRequest(BaseModel):
    """Send a generated image to Canva for editing."""

    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(
        ..., alias="imageUrl", min_length=1, description="URL of the source image."
    )
    title: Optional[str] = Field(None, description="Title for the new Canva design.")
    correlation_state: Optional[str] = Field(
        None,
        description="Opaque value Canva echoes back inside the return token.",
    )
    return_to: Optional[str] = Field(
        None, description="Where sign-in should land if it has to be restarted."
    )


class LaunchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    edit_url: str = Field(..., alias="editUrl")
    design_id: str = Field(..., alias="designId")
    asset_id: str = Field(..., alias="assetId")


class ReturnRequest(BaseModel):
    """Retrieve the edited design after Canva's return navigation."""

    model_config = ConfigDict(populate_by_name=True)

    correlation_jwt: str = Field(
        ..., min_length=1, description="Signed return token issued by Canva."
    )
    return_to: Optional[str] = None
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    image_format: Literal["jpg", "png"] = Field(
        "jpg",
        alias="imageFormat",
        description="Match the original image format when exporting.",
    )


class ReturnResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    design_id: str = Field(..., alias="designId")
    correlation_state: Optional[str] = None


__all__ = ["LaunchRequest", "LaunchResponse", "ReturnRequest", "ReturnResponse"]
