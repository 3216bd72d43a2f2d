"""
Pytest fixtures shared by the service and API tests.
"""
import os
import tempfile

import pytest

# main.py creates the data directory at import time
os.environ.setdefault("FORMS_DATA_DIR", os.path.join(tempfile.gettempdir(), "form-logic-tests", "forms"))

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from models.validators import validate_fields  # noqa: E402
from utils.settings import Settings, get_settings  # noqa: E402


def build_fields(raw_fields):
    """Validate a raw field list the way the API does, failing loudly on bad input."""
    ok, fields = validate_fields(raw_fields)
    assert ok, fields
    return fields


@pytest.fixture
def fields_from():
    return build_fields


@pytest.fixture
def settings(tmp_path):
    return Settings(forms_data_dir=str(tmp_path / "forms"), max_fields=20)


@pytest.fixture
def client(settings):
    """Test client with settings pointing at a temporary form store."""
    os.makedirs(settings.forms_data_dir, exist_ok=True)
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def survey_fields():
    """A small published-form field list exercising logic, skip and recall."""
    return [
        {"id": "first", "type": "text", "label": "First name", "order": 0},
        {"id": "last", "type": "text", "label": "Last name", "order": 1},
        {
            "id": "age", "type": "number", "label": "Age", "order": 2,
            "skipLogic": {
                "enabled": True,
                "conditions": [{"fieldId": "age", "operator": "less_than", "value": 18}],
                "targetFieldId": "summary",
            },
        },
        {
            "id": "employer", "type": "text", "label": "Employer", "order": 3,
            "conditionalLogic": {
                "action": "show",
                "conditions": [{"fieldId": "age", "operator": "greater_than", "value": "17"}],
            },
        },
        {
            "id": "fullName", "type": "text", "label": "Full name", "order": 4,
            "answerRecall": {"enabled": True, "template": "{{first}} {{last}}"},
        },
        {
            "id": "summary", "type": "textarea", "label": "Summary", "order": 5,
            "answerRecall": {"enabled": True, "template": "Hello uppercase({{fullName}})"},
        },
    ]


@pytest.fixture
def saved_form(client, survey_fields):
    """Publish the survey form and return its stored document."""
    response = client.post(
        "/api/forms",
        params={"user_id": "owner-1"},
        json={"title": "Survey", "isPublished": True, "fields": survey_fields},
    )
    assert response.status_code == 200, response.text
    return response.json()["form"]
