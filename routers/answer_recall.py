"""
Answer recall API router
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from routers.forms import load_owned_form, load_public_form, parse_fields
from services.answer_recall_service import TEMPLATE_FUNCTIONS, AnswerRecallService, template_functions
from services.errors import ConfigurationError
from services.evaluation_service import EvaluationService
from services.field_graph import template_references
from services.forms_store import FormsStore, get_forms_store
from services.response_values import ResponseMap, json_safe
from utils.limiter import evaluate_rate_limit, limiter
from utils.settings import Settings, get_settings

router = APIRouter(prefix="/api/answer-recall", tags=["answer-recall"])
logger = logging.getLogger("backend.answer_recall")


class RecallProcessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    form_id: str = Field(alias="formId")
    responses: Dict[str, Any] = Field(default_factory=dict)
    field_id: Optional[str] = Field(default=None, alias="fieldId")


class TemplateRequest(BaseModel):
    template: str = Field(min_length=1)
    responses: Dict[str, Any] = Field(default_factory=dict)
    fields: List[Dict[str, Any]] = Field(default_factory=list)


class RecallFormRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    form_id: str = Field(alias="formId")


class RecallSimulateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    form_id: str = Field(alias="formId")
    test_responses: Dict[str, Any] = Field(alias="testResponses")


@router.post("/process")
@limiter.limit(evaluate_rate_limit)
async def process_recall(
    request: Request,
    body: RecallProcessRequest,
    store: FormsStore = Depends(get_forms_store),
):
    """Recalled values for all fields of a published form, or for one field"""
    form = load_public_form(body.form_id, store)
    recalled, report = AnswerRecallService.process_answer_recall(form.fields, body.responses)

    if body.field_id:
        if body.field_id not in {f.id for f in form.fields}:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Field not found")
        recalled = {k: v for k, v in recalled.items() if k == body.field_id}

    dependencies = {
        field_id: AnswerRecallService.get_dependent_fields(field_id, form.fields)
        for field_id in recalled
    }
    return {
        "success": True,
        "data": {
            "recalledValues": recalled,
            "dependencies": dependencies,
            "fieldCount": len(recalled),
            "report": report.model_dump(by_alias=True),
            "processedAt": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.post("/template")
@limiter.limit(evaluate_rate_limit)
async def process_template(
    request: Request,
    body: TemplateRequest,
    settings: Settings = Depends(get_settings),
):
    """Resolve an ad-hoc template against responses"""
    if body.fields:
        parse_fields(body.fields, settings)
    try:
        processed = AnswerRecallService.resolve_template(body.template, ResponseMap.from_raw(body.responses))
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    referenced = template_references(body.template)
    used = template_functions(body.template)
    return {
        "success": True,
        "data": {
            "originalTemplate": body.template,
            "processedTemplate": processed,
            "referencedFields": referenced,
            "usedFunctions": [name for name in used if name in TEMPLATE_FUNCTIONS],
            "hasReferences": bool(referenced),
            "processedAt": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.post("/validate")
async def validate_recall(
    body: RecallFormRequest,
    user_id: Optional[str] = None,
    store: FormsStore = Depends(get_forms_store),
):
    """Validate answer recall configuration and summarize its use"""
    form = load_owned_form(body.form_id, user_id, store)
    analysis = AnswerRecallService.analyze_recall(form.fields)
    data = analysis.model_dump(by_alias=True)
    validation = data.pop("validation")
    recommendations = data.pop("recommendations")
    return {
        "success": True,
        "data": {
            "validation": validation,
            "analysis": data,
            "recommendations": recommendations,
        },
    }


@router.get("/dependencies/{form_id}/{field_id}")
async def field_dependencies(
    form_id: str,
    field_id: str,
    user_id: Optional[str] = None,
    store: FormsStore = Depends(get_forms_store),
):
    """Which fields read field_id, and which fields field_id itself reads"""
    form = load_owned_form(form_id, user_id, store)
    by_id = {f.id: f for f in form.fields}
    target = by_id.get(field_id)
    dependents = AnswerRecallService.get_dependent_fields(field_id, form.fields)

    return {
        "success": True,
        "data": {
            "fieldId": field_id,
            "fieldLabel": target.label if target else "Unknown",
            "hasAnswerRecall": bool(target and target.has_recall()),
            "references": AnswerRecallService.get_field_references(field_id, form.fields),
            "dependenciesCount": len(dependents),
            "dependencies": dependents,
            "dependentFields": [
                {
                    "id": dep,
                    "label": by_id[dep].label,
                    "type": by_id[dep].type,
                    "answerRecall": (
                        by_id[dep].answer_recall.model_dump(by_alias=True)
                        if by_id[dep].answer_recall else None
                    ),
                }
                for dep in dependents
            ],
            "affectedByChanges": bool(dependents),
        },
    }


@router.post("/simulate")
async def simulate_recall(
    body: RecallSimulateRequest,
    user_id: Optional[str] = None,
    store: FormsStore = Depends(get_forms_store),
):
    """Run logic and recall together with test responses"""
    form = load_owned_form(body.form_id, user_id, store)
    result = EvaluationService.evaluate(form.fields, body.test_responses)
    test_responses = ResponseMap.from_raw(body.test_responses).to_raw()

    return {
        "success": True,
        "data": {
            "testResponses": json_safe(body.test_responses),
            "recalledValues": result.recalled_values,
            "finalValues": result.final_values,
            "conditionalLogic": {
                "visibleFields": result.visible_fields,
                "hiddenFields": result.hidden_fields,
                "requiredFields": result.required_fields,
                "skipTargets": result.skip_targets,
            },
            "report": result.report.model_dump(by_alias=True),
            "fieldDetails": [
                {
                    "id": field.id,
                    "label": field.label,
                    "type": field.type,
                    "hasAnswerRecall": field.has_recall(),
                    "isVisible": field.id in result.visible_fields,
                    "originalValue": test_responses.get(field.id),
                    "recalledValue": result.recalled_values.get(field.id),
                    "finalValue": result.final_values.get(field.id),
                    "issues": [i.model_dump(by_alias=True) for i in result.report.for_field(field.id)],
                }
                for field in form.fields
            ],
        },
    }
