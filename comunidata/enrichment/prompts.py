"""
Prompt construction and response extraction for the validation service.
"""

import json
from typing import Sequence

from pydantic import TypeAdapter, ValidationError

from comunidata.core.exceptions import ValidationResponseError
from comunidata.core.models import CitizenReport, ProblemCategory, ValidationVerdict


CATEGORY_GUIDE = {
    ProblemCategory.HEALTH: "public health, hospitals, clinics, medicines",
    ProblemCategory.EDUCATION: "schools, teachers, educational infrastructure",
    ProblemCategory.ENVIRONMENT: "pollution, waste, deforestation, water, air",
    ProblemCategory.SECURITY: "crime, violence, street lighting, police",
}

BIAS_TAXONOMY = (
    "Discriminatory language (racism, sexism, xenophobia)",
    "Clearly false or exaggerated information",
    "Personal attacks or defamation",
    "Political propaganda",
)

_VERDICTS = TypeAdapter(list[ValidationVerdict])


def build_validation_prompt(reports: Sequence[CitizenReport]) -> str:
    """
    Build one instruction-plus-data prompt for a group of reports.

    Each report is listed with its identifier, comment, suggested category
    and city; the service is asked for a bare JSON array, one object per id.
    """
    lines = [
        "You are a validation system for citizen reports. Analyze each report, "
        "detect bias, validate its category and decide whether it is legitimate.",
        "",
        "VALID CATEGORIES:",
    ]
    lines += [f"- {category.display_name}: {guide}" for category, guide in CATEGORY_GUIDE.items()]
    lines += ["", "BIAS TO DETECT:"]
    lines += [f"- {kind}" for kind in BIAS_TAXONOMY]
    lines += [
        "",
        "For every report answer ONLY with a JSON array (no additional text). Each object must have:",
        "- id: the report identifier",
        "- biasDetected: true/false",
        "- biasDescription: description of the bias, or null",
        "- validatedCategory: the correct category",
        "- isLegitimate: true/false",
        "",
        "REPORTS TO ANALYZE:",
    ]
    for position, report in enumerate(reports, start=1):
        suggested = report.category.display_name if report.category else "Not specified"
        lines += [
            f"{position}. ID: {report.record_id}",
            f"   Comment: {report.comment}",
            f"   Suggested category: {suggested}",
            f"   City: {report.city}",
            "",
        ]
    lines.append(
        'Reply ONLY with the JSON array. Format: [{"id":"...", "biasDetected":false, '
        '"biasDescription":null, "validatedCategory":"Health", "isLegitimate":true}, ...]'
    )
    return "\n".join(lines)


def extract_json_array(response: str) -> str:
    """Slice from the first '[' to the last ']', ignoring surrounding chatter."""
    start = response.find("[")
    end = response.rfind("]")
    if start >= 0 and end > start:
        return response[start:end + 1]
    return response.strip()


def parse_verdicts(response: str | None) -> list[ValidationVerdict]:
    """
    Parse the service answer into verdicts.

    Raises:
        ValidationResponseError: If the answer is not a JSON array of
            verdict objects
    """
    if not response or not response.strip():
        raise ValidationResponseError("Empty response from validation service")
    try:
        payload = json.loads(extract_json_array(response))
    except json.JSONDecodeError as e:
        raise ValidationResponseError(f"Response is not valid JSON: {e.msg}") from e
    if not isinstance(payload, list):
        raise ValidationResponseError("Response is not a JSON array")
    try:
        return _VERDICTS.validate_python(payload)
    except ValidationError as e:
        raise ValidationResponseError(f"Response entries do not match the verdict shape: {e.error_count()} errors") from e
