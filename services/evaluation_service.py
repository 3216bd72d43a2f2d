"""
Evaluation driver: one ordered pass over a form's fields that applies
conditional logic and answer recall together.
"""
import logging
from typing import Any, Dict, List

from models.base import FormFieldModel
from services.answer_recall_service import AnswerRecallService
from services.conditional_logic_service import ConditionalLogicService
from services.errors import ConfigurationError, MissingReferenceError
from services.field_graph import FieldGraph
from services.reports import EvaluationResult, ValidationReport
from services.response_values import ResponseMap

logger = logging.getLogger("backend.evaluation")


class EvaluationService:
    """Runs logic and recall for every field and collects a per-field report"""

    @staticmethod
    def evaluate(fields: List[FormFieldModel], responses: Any) -> EvaluationResult:
        """
        Evaluate a form against a response map

        The pass is a fold over the fields in display order. Each field sees
        the submitted responses overlaid with the values recalled for fields
        declared before it. Recalled values therefore never flow backwards, and
        a field's recall never reads its own value.

        Configuration errors (unknown operator, combinator, action or template
        function) are recorded in the report; the failing field stays visible
        with its static required flag and recalls nothing.
        """
        graph = FieldGraph(fields)
        base = ResponseMap.from_raw(responses)
        result = EvaluationResult()
        report = result.report
        recalled: Dict[str, Any] = {}
        explicit_skips: Dict[str, str] = {}

        for field in graph.fields:
            if field.id in result.field_states:
                report.add_error(field.id, 'DuplicateFieldId', f"Field {field.id} is declared more than once; only the first declaration is evaluated")
                continue

            # Logic may test the field's own answer; recall never reads it
            view = base.merged(recalled)

            state = ConditionalLogicService.evaluate_field(field, view, report)
            result.field_states[field.id] = state
            (result.visible_fields if state.visible else result.hidden_fields).append(field.id)
            if state.visible and state.required:
                result.required_fields.append(field.id)
            if state.skip_to:
                explicit_skips[field.id] = state.skip_to

            try:
                value = AnswerRecallService.calculate_recalled_value(field, view.without(field.id))
            except ConfigurationError as exc:
                logger.debug("recall error field=%s: %s", field.id, exc.message)
                report.add_exception(exc, field.id)
                state.error = state.error or exc.message
                value = None
            if value is not None:
                recalled[field.id] = value

            for ref in graph.missing_references(field):
                report.add_warning(field.id, MissingReferenceError.code, f"Field {field.id}: references non-existent field {ref}; treated as no value")

        result.skip_targets = ConditionalLogicService.resolve_skip_targets(
            graph.fields, result.visible_fields, explicit_skips
        )
        result.recalled_values = recalled
        result.final_values = base.merged(recalled).to_raw()

        if report.errors:
            logger.info(
                "evaluated %s fields with %s configuration errors",
                len(graph.fields),
                len(report.errors),
            )
        return result

    @staticmethod
    def validate(fields: List[FormFieldModel]) -> ValidationReport:
        """Static report over logic and recall configuration for the whole form"""
        graph = FieldGraph(fields)
        report = ValidationReport()
        for field_id in dict.fromkeys(graph.duplicates):
            report.add_error(field_id, 'DuplicateFieldId', f"Field {field_id} is declared more than once")
        report.extend(ConditionalLogicService.validate_conditional_logic(fields))
        report.extend(AnswerRecallService.validate_answer_recall(fields))
        return report

    @staticmethod
    def field_references(fields: List[FormFieldModel]) -> Dict[str, List[str]]:
        """field id -> identifiers its logic or recall reads, for fields that read any"""
        graph = FieldGraph(fields)
        refs = {}
        for field in graph.fields:
            field_refs = graph.references(field)
            if field_refs:
                refs[field.id] = field_refs
        return refs
