from pydantic import BaseModel, ConfigDict, Field


class PersonInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = ""
    email: str = ""
    office_hours: str = Field(default="", alias="officeHours")


class Assessment(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    date: str = ""
    time: str | None = None


class Assignment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    number: str = ""
    due_date: str = Field(default="", alias="dueDate")


class SyllabusInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    instructor_info: list[PersonInfo] = Field(default_factory=list, alias="instructorInfo")
    ta_info: list[PersonInfo] = Field(default_factory=list, alias="taInfo")
    assessments: list[Assessment] = Field(default_factory=list)
    assignments: list[Assignment] = Field(default_factory=list)


class AnalyzeSyllabusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    syllabus_text: str = Field(default="", alias="syllabusText")
    basic_info: SyllabusInfo = Field(default_factory=SyllabusInfo, alias="basicInfo")
