"""
Forms API router: store form definitions and evaluate them against responses
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from models.base import FormFieldModel, FormModel
from models.validators import validate_fields, validate_form
from services.evaluation_service import EvaluationService
from services.forms_store import FormsStore, get_forms_store
from utils.limiter import evaluate_rate_limit, limiter
from utils.settings import Settings, get_settings

router = APIRouter(prefix="/api/forms", tags=["forms"])
logger = logging.getLogger("backend.forms")


class ResponsesBody(BaseModel):
    responses: Dict[str, Any] = Field(default_factory=dict)


class InlineEvaluateBody(BaseModel):
    fields: List[Dict[str, Any]] = Field(default_factory=list)
    responses: Dict[str, Any] = Field(default_factory=dict)


def ensure_field_limit(fields: List[Any], settings: Settings) -> None:
    if len(fields) > settings.max_fields:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Forms are limited to {settings.max_fields} fields",
        )


def parse_fields(fields: List[Dict[str, Any]], settings: Settings) -> List[FormFieldModel]:
    """Validate a raw field list from a request body (422 with details on failure)"""
    ensure_field_limit(fields, settings)
    ok, result = validate_fields(fields)
    if not ok:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result)
    return result


def load_public_form(form_id: str, store: FormsStore) -> FormModel:
    """Form for rendering: must exist and be published"""
    form = store.load_form(form_id)
    if not form:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Form not found")
    if not form.is_published:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Form is not public")
    return form


def load_owned_form(form_id: str, user_id: Optional[str], store: FormsStore) -> FormModel:
    """Form for the builder: must exist and belong to user_id"""
    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing user_id")
    form = store.load_form(form_id)
    if not form or form.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Form not found or access denied",
        )
    return form


@router.post("")
async def save_form(
    form_data: Dict[str, Any],
    user_id: Optional[str] = None,
    store: FormsStore = Depends(get_forms_store),
    settings: Settings = Depends(get_settings),
):
    """Create or replace a form definition"""
    if user_id:
        form_data = {**form_data, "userId": user_id}
    ensure_field_limit(form_data.get("fields") or [], settings)
    ok, form = validate_form(form_data)
    if not ok:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=form)
    if not form.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing user_id")

    if form.id:
        existing = store.load_form(form.id)
        if existing and existing.user_id != form.user_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Form not found or access denied")
    try:
        saved = store.save_form(form)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    report = EvaluationService.validate(saved.fields)
    return {
        "form": saved.model_dump(mode="json", by_alias=True),
        "validation": report.model_dump(by_alias=True),
    }


@router.get("/{form_id}")
async def get_form(form_id: str, store: FormsStore = Depends(get_forms_store)):
    """Published form definition for rendering"""
    form = load_public_form(form_id, store)
    return {"form": form.model_dump(mode="json", by_alias=True)}


@router.post("/evaluate")
@limiter.limit(evaluate_rate_limit)
async def evaluate_inline(
    request: Request,
    body: InlineEvaluateBody,
    settings: Settings = Depends(get_settings),
):
    """Preview: evaluate a field list that has not been saved yet"""
    fields = parse_fields(body.fields, settings)
    result = EvaluationService.evaluate(fields, body.responses)
    return {"success": True, "data": result.model_dump(by_alias=True)}


@router.post("/{form_id}/evaluate")
@limiter.limit(evaluate_rate_limit)
async def evaluate_form(
    form_id: str,
    request: Request,
    body: ResponsesBody,
    store: FormsStore = Depends(get_forms_store),
):
    """Visibility, requirement, skip targets and recalled values for a published form"""
    form = load_public_form(form_id, store)
    result = EvaluationService.evaluate(form.fields, body.responses)
    return {"success": True, "data": result.model_dump(by_alias=True)}


@router.post("/{form_id}/validate")
async def validate_form_logic(
    form_id: str,
    user_id: Optional[str] = None,
    store: FormsStore = Depends(get_forms_store),
):
    """Validation report over the form's logic and recall configuration"""
    form = load_owned_form(form_id, user_id, store)
    report = EvaluationService.validate(form.fields)
    return {
        "success": True,
        "data": {
            **report.model_dump(by_alias=True),
            "fieldCount": len(form.fields),
            "references": EvaluationService.field_references(form.fields),
        },
    }
