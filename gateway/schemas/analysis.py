from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SyllabusTasksRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    syllabus_text: str = Field(min_length=1, alias="syllabusText")
    class_name: str = Field(default="", alias="className")
    course_name: str = Field(default="", alias="courseName")


class ScheduledTask(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    title: str
    type: str = ""
    due_date: str = Field(default="", alias="dueDate")
    class_name: str = Field(default="", alias="class")
    description: str | None = None


class ScheduleAnalysisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tasks: list[ScheduledTask] = Field(default_factory=list)
    class_workloads: Any = Field(default=None, alias="classWorkloads")


class GenerationConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    temperature: float | None = None
    max_output_tokens: int | None = Field(default=None, alias="maxOutputTokens")
    top_k: int | None = Field(default=None, alias="topK")
    top_p: float | None = Field(default=None, alias="topP")

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AnalysisRequest(BaseModel):
    # ``type`` stays a plain string so an unknown kind is a 400 from the handler.
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    config: GenerationConfig | None = None


class AnalysisResponse(BaseModel):
    result: dict[str, Any]
