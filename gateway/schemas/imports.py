from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ImportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file: str = ""
    filename: str = ""
    content_type: str | None = Field(default=None, alias="contentType")
    format: str = ""


class ImportMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str
    format: str
    size: int
    processed_at: datetime = Field(alias="processedAt")


class ImportResponse(BaseModel):
    success: bool = True
    content: str
    warnings: list[str] = Field(default_factory=list)
    metadata: ImportMetadata
