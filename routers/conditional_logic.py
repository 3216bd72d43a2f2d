"""
Conditional logic API router: evaluation for rendering, plus validation,
simulation and analysis for the form builder
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from routers.forms import load_owned_form, load_public_form
from services.conditional_logic_service import ConditionalLogicService
from services.errors import ConfigurationError
from services.forms_store import FormsStore, get_forms_store
from utils.limiter import evaluate_rate_limit, limiter

router = APIRouter(prefix="/api/conditional-logic", tags=["conditional-logic"])
logger = logging.getLogger("backend.conditional_logic")


class LogicEvaluateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    form_id: str = Field(alias="formId")
    responses: Dict[str, Any] = Field(default_factory=dict)
    current_field_id: Optional[str] = Field(default=None, alias="currentFieldId")


class LogicFormRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    form_id: str = Field(alias="formId")
    responses: Dict[str, Any] = Field(default_factory=dict)


class ConditionTestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    conditions: List[Dict[str, Any]]
    test_values: List[Any] = Field(alias="testValues")
    combinator: str = 'AND'


@router.post("/evaluate")
@limiter.limit(evaluate_rate_limit)
async def evaluate_logic(
    request: Request,
    body: LogicEvaluateRequest,
    store: FormsStore = Depends(get_forms_store),
):
    """Evaluate conditional logic for a published form's fields"""
    form = load_public_form(body.form_id, store)
    result = ConditionalLogicService.evaluate_form_logic(form.fields, body.responses)

    next_fields: List[str] = []
    if body.current_field_id:
        next_fields = ConditionalLogicService.get_next_visible_fields(
            form.fields, body.responses, body.current_field_id
        )

    return {
        "success": True,
        "data": {
            **result.model_dump(by_alias=True),
            "nextFields": next_fields,
            "totalFields": len(form.fields),
            "evaluationTimestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.post("/validate")
async def validate_logic(
    body: LogicFormRequest,
    user_id: Optional[str] = None,
    store: FormsStore = Depends(get_forms_store),
):
    """Validate conditional logic configuration for a form"""
    form = load_owned_form(body.form_id, user_id, store)
    report = ConditionalLogicService.validate_conditional_logic(form.fields)
    return {
        "success": True,
        "data": {
            **report.model_dump(by_alias=True),
            "fieldCount": len(form.fields),
            "fieldsWithLogic": sum(1 for f in form.fields if f.has_logic() or f.has_skip_logic()),
        },
    }


@router.post("/simulate")
async def simulate_logic(
    body: LogicFormRequest,
    user_id: Optional[str] = None,
    store: FormsStore = Depends(get_forms_store),
):
    """Simulate the respondent's path through the form with given responses"""
    form = load_owned_form(body.form_id, user_id, store)
    simulation = ConditionalLogicService.simulate_form_flow(form.fields, body.responses)
    by_id = {f.id: f for f in form.fields}

    return {
        "success": True,
        "data": {
            **simulation.model_dump(by_alias=True),
            "flowPathWithDetails": [
                {
                    "fieldId": field_id,
                    "label": by_id[field_id].label,
                    "type": by_id[field_id].type,
                    "order": by_id[field_id].order,
                }
                for field_id in simulation.flow_path
            ],
            "simulationSummary": {
                "totalFields": len(form.fields),
                "visibleFieldsCount": len(simulation.visible_fields),
                "hiddenFieldsCount": len(simulation.hidden_fields),
                "skipActionsCount": len(simulation.skip_actions),
                "flowPathLength": len(simulation.flow_path),
            },
        },
    }


@router.get("/form/{form_id}/analysis")
async def analyze_logic(
    form_id: str,
    user_id: Optional[str] = None,
    store: FormsStore = Depends(get_forms_store),
):
    """Usage counts, complexity and recommendations for a form's logic"""
    form = load_owned_form(form_id, user_id, store)
    analysis = ConditionalLogicService.analyze_logic(form.fields)
    return {"success": True, "data": analysis.model_dump(by_alias=True)}


@router.post("/test-conditions")
async def run_test_conditions(body: ConditionTestRequest):
    """Try conditions against sample values without saving a form"""
    try:
        data = ConditionalLogicService.test_conditions(body.conditions, body.test_values, body.combinator)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ValueError as e:
        # pydantic.ValidationError for malformed conditions
        logger.info("test-conditions rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid conditions")
    return {"success": True, "data": data}
