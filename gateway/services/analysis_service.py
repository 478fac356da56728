from __future__ import annotations

import json
import logging
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from gateway.core.config import Settings
from gateway.schemas.analysis import AnalysisRequest, ScheduleAnalysisRequest, SyllabusTasksRequest
from gateway.services.llm_service import (
    LLMServiceError,
    analysis_candidates,
    analysis_retry_policy,
    generate_with_fallback,
)
from gateway.services.response_extractor import extract_json

logger = logging.getLogger(__name__)


class AnalysisError(RuntimeError):
    pass


class InvalidAnalysisRequest(ValueError):
    pass


DEFAULT_GENERATION_CONFIGS: dict[str, dict[str, Any]] = {
    "syllabus_tasks": {"temperature": 0.1, "topK": 1, "topP": 0.8, "maxOutputTokens": 8192},
    "schedule_analysis": {"temperature": 0.1, "topK": 40, "topP": 0.95, "maxOutputTokens": 2048},
}


def build_syllabus_task_prompt(data: SyllabusTasksRequest) -> str:
    return f"""You are a specialized academic task extraction AI. Extract tasks, assignments, and important dates from this course syllabus.

CLASS INFORMATION:
- Class Name: {data.class_name}
- Course Name: {data.course_name}

SYLLABUS CONTENT:
{data.syllabus_text}

EXTRACTION INSTRUCTIONS:
1. Extract all assignments, projects, exams, quizzes, and deliverables
2. Find specific due dates, time periods, or scheduling information
3. Identify task types (Essay, Exam, Project, Assignment, Quiz, Reading, etc.)
4. Extract point values, percentages, or grade weights when available
5. Include brief descriptions when provided

RESPONSE FORMAT:
Return a JSON object with this exact structure:
{{
  "tasks": [
    {{
      "title": "Assignment/task name",
      "description": "Brief description or requirements",
      "type": "Assignment|Project|Exam|Quiz|Reading|Essay|Presentation|Discussion|Other",
      "dueDate": "YYYY-MM-DD or null if no specific date",
      "priority": "high|medium|low",
      "points": "Point value or null",
      "weight": "Grade percentage or null",
      "notes": "Additional context or requirements"
    }}
  ],
  "courseInfo": {{
    "className": "{data.class_name}",
    "courseName": "{data.course_name}",
    "extractedDates": ["Important dates found"],
    "gradingScale": "If mentioned in syllabus",
    "policies": "Key policies mentioned"
  }}
}}

IMPORTANT RULES:
- Only extract tasks that have clear academic requirements
- Use "Other" type only when no standard type fits
- Set priority based on point value, weight, or stated importance
- Maximum 50 tasks to prevent overwhelming students
- Respond only with valid JSON, no additional text"""


def build_schedule_analysis_prompt(data: ScheduleAnalysisRequest) -> str:
    tasks = [task.model_dump(by_alias=True, exclude_none=True) for task in data.tasks]
    return f"""As an AI study schedule optimizer, analyze this student's workload and provide recommendations:

UPCOMING TASKS ({len(tasks)} total):
{json.dumps(tasks, indent=2)}

CLASS WORKLOADS:
{json.dumps(data.class_workloads, indent=2, default=str)}

Please analyze and respond with a JSON object containing:
1. estimatedTotalHours: Total hours needed for all assignments
2. stressLevel: Stress level prediction (1-10 scale)
3. recommendedDailyHours: Recommended daily study hours
4. peakWorkloadDates: Array of dates with highest workload (YYYY-MM-DD format)
5. recommendations: Object with immediate_actions, schedule_adjustments, long_term_strategies arrays
6. overloadRisk: Risk of being overloaded (0-1 scale)
7. deadlineConflicts: Number of conflicting deadlines
8. burnoutRisk: Risk of burnout (0-1 scale)

Consider:
- Assignment difficulty and time requirements
- Deadline proximity and distribution
- Subject matter complexity
- Realistic study capacity for students
- Work-life balance

Respond only with valid JSON, no additional text."""


PROMPT_BUILDERS: dict[str, tuple[type, Callable[[Any], str]]] = {
    "syllabus_tasks": (SyllabusTasksRequest, build_syllabus_task_prompt),
    "schedule_analysis": (ScheduleAnalysisRequest, build_schedule_analysis_prompt),
}


def build_analysis_prompt(request: AnalysisRequest) -> tuple[str, dict[str, Any]]:
    """Return the prompt and the merged generation config for an analysis request."""
    if request.type not in PROMPT_BUILDERS:
        raise InvalidAnalysisRequest("Invalid analysis type")

    model, builder = PROMPT_BUILDERS[request.type]
    try:
        data = model.model_validate(request.data)
    except ValidationError as exc:
        raise InvalidAnalysisRequest(f"Invalid data for {request.type}: {exc.error_count()} error(s)") from exc

    config = dict(DEFAULT_GENERATION_CONFIGS[request.type])
    if request.config is not None:
        config.update(request.config.overrides())
    return builder(data), config


async def run_analysis(
    request: AnalysisRequest,
    client: httpx.AsyncClient,
    settings: Settings,
) -> dict[str, Any]:
    prompt, config = build_analysis_prompt(request)
    logger.info("Running %s analysis with config %s", request.type, config)

    try:
        result = await generate_with_fallback(
            client,
            analysis_candidates(settings, config),
            prompt,
            analysis_retry_policy(settings),
            settings,
        )
    except LLMServiceError as exc:
        raise AnalysisError(str(exc)) from exc

    return extract_json(result.raw)
