"""
Result and report models returned by the logic services.

All of them serialize to camelCase JSON with ``model_dump(by_alias=True)`` so
routers can hand them straight back to the builder UI.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from services.errors import FormLogicError

Severity = Literal['error', 'warning']


class ResultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidationIssue(ResultModel):
    field_id: Optional[str] = None
    severity: Severity = 'error'
    code: str
    message: str


class ValidationReport(ResultModel):
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    @computed_field(alias='isValid')  # type: ignore[misc]
    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, field_id: Optional[str], code: str, message: str) -> None:
        self.errors.append(ValidationIssue(field_id=field_id, severity='error', code=code, message=message))

    def add_warning(self, field_id: Optional[str], code: str, message: str) -> None:
        self.warnings.append(ValidationIssue(field_id=field_id, severity='warning', code=code, message=message))

    def add_exception(self, exc: FormLogicError, field_id: Optional[str] = None) -> None:
        self.add_error(field_id or exc.field_id, exc.code, exc.message)

    def extend(self, other: "ValidationReport") -> "ValidationReport":
        """Append other's issues, skipping exact duplicates"""
        for issue in other.errors:
            if issue not in self.errors:
                self.errors.append(issue)
        for issue in other.warnings:
            if issue not in self.warnings:
                self.warnings.append(issue)
        return self

    def for_field(self, field_id: str) -> List[ValidationIssue]:
        return [i for i in self.errors + self.warnings if i.field_id == field_id]


class FieldState(ResultModel):
    visible: bool = True
    required: bool = False
    skip_to: Optional[str] = None
    reason: str = 'Visible by default'
    error: Optional[str] = None


class LogicResult(ResultModel):
    visible_fields: List[str] = Field(default_factory=list)
    hidden_fields: List[str] = Field(default_factory=list)
    required_fields: List[str] = Field(default_factory=list)
    skip_targets: Dict[str, str] = Field(default_factory=dict)
    field_states: Dict[str, FieldState] = Field(default_factory=dict)
    report: ValidationReport = Field(default_factory=ValidationReport)


class EvaluationResult(LogicResult):
    recalled_values: Dict[str, Any] = Field(default_factory=dict)
    final_values: Dict[str, Any] = Field(default_factory=dict)


class SkipAction(ResultModel):
    from_field: str = Field(alias='from')
    to: str
    reason: str = 'Skip condition met'


class FlowSimulation(ResultModel):
    flow_path: List[str] = Field(default_factory=list)
    visible_fields: List[str] = Field(default_factory=list)
    hidden_fields: List[str] = Field(default_factory=list)
    skip_actions: List[SkipAction] = Field(default_factory=list)


class LogicAnalysis(ResultModel):
    total_fields: int = 0
    fields_with_show_logic: int = 0
    fields_with_hide_logic: int = 0
    fields_with_require_logic: int = 0
    fields_with_skip_logic: int = 0
    total_logic_conditions: int = 0
    total_skip_conditions: int = 0
    referenced_fields: List[str] = Field(default_factory=list)
    target_fields: List[str] = Field(default_factory=list)
    complexity_score: int = 0
    validation: ValidationReport = Field(default_factory=ValidationReport)
    recommendations: List[str] = Field(default_factory=list)


class RecallAnalysis(ResultModel):
    total_fields: int = 0
    fields_with_answer_recall: int = 0
    fields_with_source_field: int = 0
    fields_with_template: int = 0
    templates_with_functions: int = 0
    field_dependencies: Dict[str, List[str]] = Field(default_factory=dict)
    validation: ValidationReport = Field(default_factory=ValidationReport)
    recommendations: List[str] = Field(default_factory=list)
