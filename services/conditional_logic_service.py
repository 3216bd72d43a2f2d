"""
Conditional logic service: field visibility, requirement and skip logic
driven by a form's responses
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from models.base import ConditionModel, FormFieldModel
from services.errors import ConfigurationError, MissingReferenceError
from services.field_graph import FieldGraph
from services.reports import (
    FieldState,
    FlowSimulation,
    LogicAnalysis,
    LogicResult,
    SkipAction,
    ValidationReport,
)
from services.response_values import (
    ResponseMap,
    ResponseValue,
    StringArrayValue,
    coerce_value,
    json_safe,
    parse_number,
)

logger = logging.getLogger("backend.conditional_logic")

OPERATORS = (
    'equals', 'not_equals',
    'contains', 'not_contains',
    'greater_than', 'less_than',
    'is_empty', 'is_not_empty',
)
NUMERIC_OPERATORS = ('greater_than', 'less_than')
VALUELESS_OPERATORS = ('is_empty', 'is_not_empty')
ACTIONS = ('show', 'hide', 'require')
COMBINATORS = ('AND', 'OR')


def _normalize(text: str) -> str:
    return text.strip().lower()


def _literal_text(literal: Any) -> str:
    return coerce_value(literal).as_text()


def _matches_equal(value: ResponseValue, literal: Any) -> bool:
    if isinstance(value, StringArrayValue):
        if isinstance(literal, (list, tuple)):
            return sorted(_normalize(i) for i in value.items) == sorted(_normalize(_literal_text(i)) for i in literal)
        return _normalize(_literal_text(literal)) in {_normalize(i) for i in value.items}
    return _normalize(value.as_text()) == _normalize(_literal_text(literal))


def _matches_contains(value: ResponseValue, literal: Any) -> bool:
    if value.is_empty():
        return False
    needle = _normalize(_literal_text(literal))
    if isinstance(value, StringArrayValue):
        return needle in {_normalize(i) for i in value.items}
    return needle in value.as_text().lower()


def _compare_numbers(value: ResponseValue, literal: Any, operator: str) -> bool:
    left = value.as_number()
    right = parse_number(literal)
    if left is None or right is None:
        return False
    if operator == 'greater_than':
        return left > right
    return left < right


class ConditionalLogicService:
    """Evaluates show / hide / require and skip rules over a field list"""

    @staticmethod
    def evaluate_condition(condition: ConditionModel, responses: ResponseMap, field_id: Optional[str] = None) -> bool:
        """
        Apply a single comparison between the referenced field's value and the literal

        Unknown source fields read as "no value". Unknown operators raise
        ConfigurationError.
        """
        operator = _normalize(condition.operator or '')
        value = responses.get(condition.field_id)

        if operator == 'is_empty':
            return value.is_empty()
        if operator == 'is_not_empty':
            return not value.is_empty()
        if operator == 'equals':
            return _matches_equal(value, condition.value)
        if operator == 'not_equals':
            return not _matches_equal(value, condition.value)
        if operator == 'contains':
            return _matches_contains(value, condition.value)
        if operator == 'not_contains':
            return not _matches_contains(value, condition.value)
        if operator in NUMERIC_OPERATORS:
            return _compare_numbers(value, condition.value, operator)

        raise ConfigurationError(f"Unknown operator: {condition.operator}", field_id)

    @staticmethod
    def combine(results: Sequence[bool], combinator: str, field_id: Optional[str] = None) -> bool:
        """AND fires when every result is true (vacuously for none), OR when any is"""
        mode = (combinator or '').strip().upper()
        if mode == 'AND':
            return all(results)
        if mode == 'OR':
            return any(results)
        raise ConfigurationError(f"Unknown combinator: {combinator}", field_id)

    @staticmethod
    def evaluate_conditions(
        conditions: Sequence[ConditionModel],
        combinator: str,
        responses: ResponseMap,
        field_id: Optional[str] = None,
    ) -> bool:
        # Every condition is evaluated so a bad operator is reported even after a decisive result
        results = [
            ConditionalLogicService.evaluate_condition(c, responses, field_id)
            for c in conditions
        ]
        return ConditionalLogicService.combine(results, combinator, field_id)

    @staticmethod
    def field_outcome(field: FormFieldModel, responses: ResponseMap) -> Tuple[bool, bool, str]:
        """Return (visible, required, reason) for one field"""
        if not field.has_logic():
            return True, field.required, 'Visible by default'

        logic = field.conditional_logic
        action = _normalize(logic.action or '')
        if action not in ACTIONS:
            raise ConfigurationError(f"Unknown action: {logic.action}", field.id)

        fired = ConditionalLogicService.evaluate_conditions(
            logic.conditions, logic.combinator, responses, field.id
        )
        if action == 'show':
            return fired, field.required, 'Shown by show conditions' if fired else 'Hidden by show conditions'
        if action == 'hide':
            return not fired, field.required, 'Hidden by hide conditions' if fired else 'Visible, hide conditions not met'
        if fired:
            return True, True, 'Required by require conditions'
        return True, field.required, 'Visible by default'

    @staticmethod
    def evaluate_skip_logic(field: FormFieldModel, responses: ResponseMap) -> Optional[str]:
        """Target field id when the field's skip rule fires, else None"""
        if not field.has_skip_logic():
            return None
        skip = field.skip_logic
        fired = ConditionalLogicService.evaluate_conditions(
            skip.conditions, skip.combinator, responses, field.id
        )
        if fired and skip.target_field_id:
            return skip.target_field_id
        return None

    @staticmethod
    def resolve_skip_targets(
        fields: Sequence[FormFieldModel],
        visible: Sequence[str],
        explicit: Dict[str, str],
    ) -> Dict[str, str]:
        """
        Fired skip rules first; every other hidden field points at the next
        visible field declared after it
        """
        visible_set = set(visible)
        targets: Dict[str, str] = {}
        next_visible: Optional[str] = None
        for field in reversed(list(fields)):
            if field.id in explicit:
                targets[field.id] = explicit[field.id]
            elif field.id not in visible_set and next_visible:
                targets[field.id] = next_visible
            if field.id in visible_set:
                next_visible = field.id
        # Keep declared order in the output
        return {f.id: targets[f.id] for f in fields if f.id in targets}

    @staticmethod
    def evaluate_field(field: FormFieldModel, responses: ResponseMap, report: ValidationReport) -> FieldState:
        """Logic outcome for one field; configuration errors land in the report"""
        state = FieldState(visible=True, required=field.required)
        try:
            state.visible, state.required, state.reason = ConditionalLogicService.field_outcome(field, responses)
        except ConfigurationError as exc:
            logger.debug("logic error field=%s: %s", field.id, exc.message)
            report.add_exception(exc, field.id)
            state.error = exc.message
            state.reason = 'Logic error, visible by default'
        try:
            state.skip_to = ConditionalLogicService.evaluate_skip_logic(field, responses)
        except ConfigurationError as exc:
            logger.debug("skip logic error field=%s: %s", field.id, exc.message)
            report.add_exception(exc, field.id)
            state.error = state.error or exc.message
        if state.skip_to:
            state.reason = f"{state.reason}, skip to field {state.skip_to}"
        return state

    @staticmethod
    def evaluate_form_logic(fields: List[FormFieldModel], responses: Any) -> LogicResult:
        """
        Evaluate visibility, requirement and skip rules for every field

        Args:
            fields: Form fields in display order
            responses: Raw response mapping or a ResponseMap

        Returns:
            LogicResult with visible / hidden / required ids, skip targets,
            per-field state and a report of configuration errors
        """
        response_map = ResponseMap.from_raw(responses)
        result = LogicResult()
        explicit: Dict[str, str] = {}

        for field in fields:
            if field.id in result.field_states:
                continue
            state = ConditionalLogicService.evaluate_field(field, response_map, result.report)
            result.field_states[field.id] = state
            (result.visible_fields if state.visible else result.hidden_fields).append(field.id)
            if state.required and state.visible:
                result.required_fields.append(field.id)
            if state.skip_to:
                explicit[field.id] = state.skip_to

        result.skip_targets = ConditionalLogicService.resolve_skip_targets(
            fields, result.visible_fields, explicit
        )
        return result

    @staticmethod
    def get_next_visible_fields(fields: List[FormFieldModel], responses: Any, current_field_id: str) -> List[str]:
        """The field to render after current_field_id, honoring fired skip rules"""
        graph = FieldGraph(fields)
        current = graph.position(current_field_id)
        if current is None:
            return []
        logic = ConditionalLogicService.evaluate_form_logic(fields, responses)
        visible = set(logic.visible_fields)

        seen = {current_field_id}
        field_id = current_field_id
        while True:
            target = logic.field_states[field_id].skip_to
            if not target or target in seen or target not in graph:
                break
            if target in visible:
                return [target]
            seen.add(target)
            field_id = target

        start = graph.position(field_id)
        for field in graph.fields[start + 1:]:
            if field.id in visible:
                return [field.id]
        return []

    @staticmethod
    def simulate_form_flow(fields: List[FormFieldModel], responses: Any) -> FlowSimulation:
        """Walk the form the way a respondent would and record skip jumps"""
        graph = FieldGraph(fields)
        logic = ConditionalLogicService.evaluate_form_logic(fields, responses)
        visible = set(logic.visible_fields)
        simulation = FlowSimulation(
            visible_fields=logic.visible_fields,
            hidden_fields=logic.hidden_fields,
        )

        index = 0
        visited = set()
        while index < len(graph.fields):
            field = graph.fields[index]
            first_visit = index not in visited
            visited.add(index)
            # Fields passed again after a backward skip are not re-entered
            if first_visit and field.id in visible:
                simulation.flow_path.append(field.id)
                target = logic.field_states[field.id].skip_to
                target_index = graph.position(target)
                if target_index is not None and target_index not in visited:
                    simulation.skip_actions.append(SkipAction(from_field=field.id, to=target))
                    index = target_index
                    continue
            index += 1

        return simulation

    @staticmethod
    def _check_conditions(
        graph: FieldGraph,
        field: FormFieldModel,
        conditions: Sequence[ConditionModel],
        combinator: str,
        label: str,
        report: ValidationReport,
    ) -> None:
        if (combinator or '').strip().upper() not in COMBINATORS:
            report.add_error(field.id, ConfigurationError.code, f"Field {field.id}: {label} uses unknown combinator {combinator}")
        if not conditions:
            report.add_warning(
                field.id, 'EmptyConditions',
                f"Field {field.id}: {label} has no conditions ({(combinator or '').upper()} with no conditions "
                f"{'always fires' if (combinator or '').strip().upper() == 'AND' else 'never fires'})",
            )
        own = graph.position(field.id)
        for index, condition in enumerate(conditions, start=1):
            operator = _normalize(condition.operator or '')
            if operator not in OPERATORS:
                report.add_error(field.id, ConfigurationError.code, f"Field {field.id}: {label} condition {index} uses unknown operator {condition.operator}")
            elif operator in NUMERIC_OPERATORS and parse_number(condition.value) is None:
                report.add_warning(field.id, 'NonNumericLiteral', f"Field {field.id}: {label} condition {index} compares against a non-numeric value and never fires")
            if condition.field_id == field.id:
                report.add_warning(field.id, 'SelfReference', f"Field {field.id}: {label} condition {index} tests the field's own answer")
            elif condition.field_id not in graph:
                report.add_warning(field.id, MissingReferenceError.code, f"Field {field.id}: {label} condition {index} references non-existent field {condition.field_id}")
            elif own is not None and graph.position(condition.field_id) > own:
                report.add_warning(field.id, 'ForwardReference', f"Field {field.id}: {label} condition {index} references a field that comes later in the form ({condition.field_id})")

    @staticmethod
    def validate_conditional_logic(fields: List[FormFieldModel]) -> ValidationReport:
        """Static checks on every field's logic and skip configuration"""
        graph = FieldGraph(fields)
        report = ValidationReport()

        for field in graph.fields:
            if field.has_logic():
                logic = field.conditional_logic
                if _normalize(logic.action or '') not in ACTIONS:
                    report.add_error(field.id, ConfigurationError.code, f"Field {field.id}: unknown logic action {logic.action}")
                ConditionalLogicService._check_conditions(
                    graph, field, logic.conditions, logic.combinator, 'Logic', report
                )

            if field.has_skip_logic():
                skip = field.skip_logic
                ConditionalLogicService._check_conditions(
                    graph, field, skip.conditions, skip.combinator, 'Skip', report
                )
                if not skip.target_field_id:
                    report.add_error(field.id, ConfigurationError.code, f"Field {field.id}: skip logic is enabled but has no target field")
                elif skip.target_field_id == field.id:
                    report.add_error(field.id, 'SelfReference', f"Field {field.id}: skip target cannot be the field itself")
                elif skip.target_field_id not in graph:
                    report.add_warning(field.id, MissingReferenceError.code, f"Field {field.id}: skip target {skip.target_field_id} does not exist")

        return report

    @staticmethod
    def analyze_logic(fields: List[FormFieldModel]) -> LogicAnalysis:
        """Usage counts, complexity score and recommendations for the builder"""
        analysis = LogicAnalysis(total_fields=len(fields))
        referenced: List[str] = []
        targets: List[str] = []

        for field in fields:
            if field.has_logic() and field.conditional_logic.conditions:
                action = _normalize(field.conditional_logic.action or '')
                if action == 'show':
                    analysis.fields_with_show_logic += 1
                elif action == 'hide':
                    analysis.fields_with_hide_logic += 1
                elif action == 'require':
                    analysis.fields_with_require_logic += 1
                analysis.total_logic_conditions += len(field.conditional_logic.conditions)
                referenced.extend(c.field_id for c in field.conditional_logic.conditions)
            if field.has_skip_logic() and field.skip_logic.conditions:
                analysis.fields_with_skip_logic += 1
                analysis.total_skip_conditions += len(field.skip_logic.conditions)
                referenced.extend(c.field_id for c in field.skip_logic.conditions)
                if field.skip_logic.target_field_id:
                    targets.append(field.skip_logic.target_field_id)

        analysis.referenced_fields = list(dict.fromkeys(referenced))
        analysis.target_fields = list(dict.fromkeys(targets))
        logic_fields = (
            analysis.fields_with_show_logic
            + analysis.fields_with_hide_logic
            + analysis.fields_with_require_logic
        )
        analysis.complexity_score = (
            logic_fields * 2
            + analysis.fields_with_skip_logic * 3
            + analysis.total_logic_conditions
            + analysis.total_skip_conditions * 2
        )
        analysis.validation = ConditionalLogicService.validate_conditional_logic(fields)
        analysis.recommendations = ConditionalLogicService._recommendations(analysis, logic_fields)
        return analysis

    @staticmethod
    def _recommendations(analysis: LogicAnalysis, logic_fields: int) -> List[str]:
        recommendations: List[str] = []
        if analysis.complexity_score > 20:
            recommendations.append('Consider simplifying conditional logic to improve form performance and user experience')
        if any(w.code == 'ForwardReference' for w in analysis.validation.warnings):
            recommendations.append('Review forward references in conditions as they may cause unexpected behavior')
        if analysis.total_fields and analysis.fields_with_skip_logic > analysis.total_fields * 0.5:
            recommendations.append('High number of skip conditions detected - consider restructuring form flow')
        if logic_fields == 0 and analysis.fields_with_skip_logic == 0:
            recommendations.append('No conditional logic configured - consider adding conditions to improve form relevance')
        return recommendations

    @staticmethod
    def test_conditions(conditions: List[Dict[str, Any]], test_values: List[Any], combinator: str = 'AND') -> Dict[str, Any]:
        """
        Evaluate ad-hoc conditions against sample values

        Every condition is pointed at a synthetic field holding the test value.
        Raises ConfigurationError for unknown operators or combinators.
        """
        probe = 'testField'
        parsed = [ConditionModel.model_validate({**c, 'fieldId': probe}) for c in conditions]
        results = []
        for test_value in test_values:
            responses = ResponseMap({probe: test_value})
            individual = [ConditionalLogicService.evaluate_condition(c, responses) for c in parsed]
            results.append({
                'testValue': json_safe(test_value),
                'result': ConditionalLogicService.combine(individual, combinator),
                'conditions': [
                    {'operator': c.operator, 'value': c.value, 'individualResult': r}
                    for c, r in zip(parsed, individual)
                ],
            })
        passed = sum(1 for r in results if r['result'])
        return {
            'testResults': results,
            'summary': {
                'totalTests': len(results),
                'passedTests': passed,
                'failedTests': len(results) - passed,
            },
        }
