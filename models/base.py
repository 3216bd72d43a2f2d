"""
Base Pydantic models for form definitions, validation and sanitization
"""
from datetime import datetime
from typing import Optional, List, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator
import re
import bleach

from services.response_values import json_safe


FieldType = Literal[
    'text', 'textarea', 'email', 'number', 'phone', 'url',
    'dropdown', 'radio', 'checkbox', 'date', 'file', 'rating', 'scale',
]


class BaseDBModel(BaseModel):
    """Base model with common validation and sanitization methods"""
    model_config = ConfigDict(populate_by_name=True)

    @field_validator('*', mode='before')
    def sanitize_strings(cls, v, info):
        """Sanitize string inputs to prevent XSS attacks"""
        if isinstance(v, str) and info.field_name:
            # Use bleach to sanitize HTML content
            return bleach.clean(v.strip(), strip=True)
        return v


class LogicModel(BaseModel):
    """Logic definitions keep their literals verbatim (no HTML sanitization)"""
    model_config = ConfigDict(populate_by_name=True)


class ConditionModel(LogicModel):
    """A single comparison between a referenced field and a literal"""
    field_id: str = Field(alias="fieldId")
    # Free string so unknown operators reach the evaluator and get reported per field
    operator: str
    value: Any = None

    @field_validator('field_id', 'operator')
    def strip_identifiers(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('value')
    def finite_literal(cls, v):
        return json_safe(v)


class ConditionalLogicModel(LogicModel):
    """show / hide / require a field when the condition set fires"""
    enabled: bool = True
    action: str = 'show'
    combinator: str = 'AND'
    conditions: List[ConditionModel] = Field(default_factory=list)


class SkipLogicModel(LogicModel):
    """Jump to target_field_id when the condition set fires"""
    enabled: bool = True
    combinator: str = 'AND'
    conditions: List[ConditionModel] = Field(default_factory=list)
    target_field_id: Optional[str] = Field(default=None, alias="targetFieldId")


class AnswerRecallModel(LogicModel):
    """Auto-fill from a source field or a {{fieldId}} template"""
    enabled: bool = False
    source_field_id: Optional[str] = Field(default=None, alias="sourceFieldId")
    template: Optional[str] = None

    @field_validator('source_field_id')
    def blank_source_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v


class FormFieldModel(BaseDBModel):
    """Form field definition as stored with the form document"""
    id: str
    type: FieldType = 'text'
    label: str = ''
    placeholder: Optional[str] = None
    required: bool = False
    order: int = 0
    options: Optional[List[str]] = None
    conditional_logic: Optional[ConditionalLogicModel] = Field(default=None, alias="conditionalLogic")
    skip_logic: Optional[SkipLogicModel] = Field(default=None, alias="skipLogic")
    answer_recall: Optional[AnswerRecallModel] = Field(default=None, alias="answerRecall")

    @field_validator('id')
    def validate_field_id(cls, v):
        """Field identifiers are used inside {{ }} tokens"""
        if not re.match(r'^[A-Za-z0-9_.-]{1,128}$', v):
            raise ValueError('Field id must contain only letters, digits, "_", "-" or "."')
        return v

    @field_validator('label')
    def validate_label(cls, v):
        if len(v) > 1000:
            v = v[:1000]
        return v

    @field_validator('options')
    def validate_options(cls, v):
        if v is None:
            return v
        return [o for o in v if o != '']

    def has_logic(self) -> bool:
        return bool(self.conditional_logic and self.conditional_logic.enabled)

    def has_skip_logic(self) -> bool:
        return bool(self.skip_logic and self.skip_logic.enabled)

    def has_recall(self) -> bool:
        return bool(self.answer_recall and self.answer_recall.enabled)


class FormModel(BaseDBModel):
    """Form document: owner, publish state and the ordered field list"""
    id: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    title: str = 'Untitled Form'
    description: Optional[str] = None
    is_published: bool = Field(default=False, alias="isPublished")
    fields: List[FormFieldModel] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator('fields')
    def order_fields(cls, v):
        return display_order(v)


def display_order(fields: List[FormFieldModel]) -> List[FormFieldModel]:
    """Explicit order index first, then declaration position"""
    indexed = list(enumerate(fields))
    indexed.sort(key=lambda pair: (pair[1].order, pair[0]))
    return [f for _, f in indexed]
