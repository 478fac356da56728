from pydantic import BaseModel, ConfigDict, Field


class FileRecord(BaseModel):
    """Row of ``class_files`` as delivered by the storage trigger."""

    model_config = ConfigDict(extra="ignore")

    id: str | int | None = None
    name: str = Field(min_length=1)
    path: str = Field(min_length=1)
    class_id: str
    type: str | None = None


class EmbedFileRequest(BaseModel):
    record: FileRecord | None = None


class EmbedFileResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    message: str
    chunks_processed: int = Field(alias="chunksProcessed")
    content_length: int = Field(alias="contentLength")
    extracted_text_id: str | int | None = Field(default=None, alias="extractedTextId")
    extracted_text: str | None = Field(default=None, alias="extractedText")
