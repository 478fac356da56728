import logging
import re

from gateway.schemas.syllabus import Assessment, Assignment, PersonInfo, SyllabusInfo

logger = logging.getLogger(__name__)

_TIME = r"\d{1,2}(?::\d{2})?\s*(?:am|pm)"
_WEEKDAY = r"(?:Monday|Tuesday|Wednesday|Thursday|Friday|Mon|Tue|Wed|Thu|Fri)"
_DATE = r"(\d{1,2}/\d{1,2}|\w+ \d{1,2})"

_OFFICE_HOURS_GENERIC = re.compile(rf"office hours:?\s*([^.]*?(?:{_TIME}[^.]*?))", re.IGNORECASE)
_OFFICE_HOURS_WEEKDAY = re.compile(
    rf"office hours:?\s*({_WEEKDAY}[^.]*?(?:{_TIME})[^.]*?)", re.IGNORECASE
)
_WEEKDAY_BEFORE_OFFICE = re.compile(rf"({_WEEKDAY}[^.]*?(?:{_TIME})[^.]*?office)", re.IGNORECASE)
_TA_OFFICE_HOURS = re.compile(
    rf"ta[^.]*?office hours:?\s*([^.]*?(?:{_TIME}[^.]*?))", re.IGNORECASE
)


def _named_office_hours(name: str) -> re.Pattern[str] | None:
    first_name = name.split(" ")[0]
    if not first_name:
        return None
    return re.compile(
        rf"{re.escape(first_name)}[^.]*?office hours[^.]*?(\d{{1,2}}(?::\d{{2}})?\s*(?:am|pm)[^.]*?)",
        re.IGNORECASE,
    )


def _first_group(text: str, patterns: list[re.Pattern[str] | None]) -> str | None:
    for pattern in patterns:
        if pattern is None:
            continue
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1).strip()
    return None


def _with_office_hours(
    person: PersonInfo,
    text: str,
    fallbacks: list[re.Pattern[str]],
) -> PersonInfo:
    hours = _first_group(text, [_named_office_hours(person.name), *fallbacks])
    if hours is None:
        return person
    return person.model_copy(update={"office_hours": hours})


def find_due_date(text: str, assignment_type: str, number: str) -> str | None:
    kind = re.escape(assignment_type)
    num = re.escape(number)
    patterns = [
        re.compile(rf"{kind}\s*{num}[^.]*?due[^.]*?{_DATE}", re.IGNORECASE),
        re.compile(rf"week\s*\d+[^.]*?{kind}\s*{num}[^.]*?{_DATE}", re.IGNORECASE),
        re.compile(rf"{kind}\s*{num}[^.]*?{_DATE}", re.IGNORECASE),
        re.compile(rf"{kind}[^\n]*?{num}[^\n]*?(\d{{1,2}}/\d{{1,2}})", re.IGNORECASE),
    ]
    return _first_group(text, patterns)


def _with_due_date(assignment: Assignment, text: str) -> Assignment:
    due = find_due_date(text, assignment.type.lower(), assignment.number)
    if due is None:
        return assignment
    return assignment.model_copy(update={"due_date": due})


def _with_time(assessment: Assessment, text: str) -> Assessment:
    if assessment.date and re.search(r"\d", assessment.date):
        return assessment
    pattern = re.compile(rf"{re.escape(assessment.type)}[^.]*?(\d{{1,2}}:\d{{2}}\s*(?:am|pm))", re.IGNORECASE)
    match = pattern.search(text)
    if not match:
        return assessment
    return assessment.model_copy(update={"time": match.group(1).strip()})


def enhance_syllabus(text: str, basic_info: SyllabusInfo) -> SyllabusInfo:
    """Fill office hours, due dates and assessment times from the raw syllabus text.

    Fields that cannot be matched are returned unchanged.
    """
    enhanced = basic_info.model_copy(
        update={
            "instructor_info": [
                _with_office_hours(
                    person,
                    text,
                    [_OFFICE_HOURS_GENERIC, _OFFICE_HOURS_WEEKDAY, _WEEKDAY_BEFORE_OFFICE],
                )
                for person in basic_info.instructor_info
            ],
            "ta_info": [
                _with_office_hours(person, text, [_TA_OFFICE_HOURS, _OFFICE_HOURS_WEEKDAY])
                for person in basic_info.ta_info
            ],
            "assignments": [_with_due_date(item, text) for item in basic_info.assignments],
            "assessments": [_with_time(item, text) for item in basic_info.assessments],
        }
    )
    logger.info(
        "Enhanced syllabus: %d instructors, %d TAs, %d assignments, %d assessments",
        len(enhanced.instructor_info),
        len(enhanced.ta_info),
        len(enhanced.assignments),
        len(enhanced.assessments),
    )
    return enhanced
