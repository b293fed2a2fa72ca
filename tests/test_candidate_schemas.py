from datetime import date, datetime

import pytest
from pydantic import ValidationError

from backend.app.schemas.candidate import CandidateCreate, CandidateUpdate, EducationIn, WorkExperienceIn
from backend.app.utils.validation import format_pydantic_errors, parse_json_list_field, sanitize_filename
from backend.app.utils.error_handlers import ValidationError as AppValidationError


def _messages(exc_info) -> list[str]:
    return [e["message"] for e in format_pydantic_errors(exc_info.value)]


def test_create_normalizes_fields():
    c = CandidateCreate.model_validate(
        {
            "firstName": "  José ",
            "lastName": "O'Neil-Smith",
            "email": " Jose@Example.COM ",
            "phone": "",
        }
    )
    assert c.first_name == "José"
    assert c.last_name == "O'Neil-Smith"
    assert c.email == "jose@example.com"
    assert c.phone is None
    assert c.education == [] and c.work_experience == []


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"firstName": "R2D2"}, "First name contains invalid characters"),
        ({"lastName": "L" * 51}, "Last name must be between 2 and 50 characters"),
        ({"email": "ada@"}, "Please provide a valid email address"),
        ({"phone": "12345"}, "Please provide a valid phone number"),
    ],
)
def test_create_rejects_bad_fields(payload, message):
    body = {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@x.com", **payload}
    with pytest.raises(ValidationError) as exc:
        CandidateCreate.model_validate(body)
    assert message in _messages(exc)


def test_create_requires_names_and_email():
    with pytest.raises(ValidationError) as exc:
        CandidateCreate.model_validate({})
    fields = {e["field"] for e in format_pydantic_errors(exc.value)}
    assert fields == {"firstName", "lastName", "email"}


def test_update_only_reports_sent_fields():
    changes = CandidateUpdate.model_validate({"address": "London", "education": []}).changes()
    assert changes == {"address": "London", "education": []}


def test_education_year_range():
    assert EducationIn.model_validate({"degree": "BSc", "institution": "MIT", "graduationYear": ""}).graduation_year is None
    with pytest.raises(ValidationError):
        EducationIn.model_validate({"degree": "BSc", "institution": "MIT", "graduationYear": 1949})
    with pytest.raises(ValidationError):
        EducationIn.model_validate(
            {"degree": "BSc", "institution": "MIT", "graduationYear": datetime.now().year + 11}
        )


def test_work_experience_dates():
    w = WorkExperienceIn.model_validate(
        {"company": "Acme", "position": "Dev", "startDate": "2021-03-01T00:00:00.000Z", "endDate": ""}
    )
    assert w.start_date == date(2021, 3, 1)
    assert w.end_date is None

    with pytest.raises(ValidationError) as exc:
        WorkExperienceIn.model_validate(
            {"company": "Acme", "position": "Dev", "startDate": "2021-03-01", "endDate": "2021-03-01"}
        )
    assert "End date must be after start date" in _messages(exc)


def test_parse_json_list_field():
    assert parse_json_list_field(None, "education") is None
    assert parse_json_list_field("  ", "education") == []
    assert parse_json_list_field('[{"degree": "BSc"}]', "education") == [{"degree": "BSc"}]

    with pytest.raises(AppValidationError) as exc:
        parse_json_list_field("{oops", "education")
    assert exc.value.message == "Invalid form data format"

    with pytest.raises(AppValidationError):
        parse_json_list_field('{"degree": "BSc"}', "education")


def test_sanitize_filename():
    assert sanitize_filename("C:\\Users\\ada\\cv.pdf") == "cv.pdf"
    assert sanitize_filename("../.hidden.pdf") == "hidden.pdf"
    with pytest.raises(AppValidationError):
        sanitize_filename("...")
