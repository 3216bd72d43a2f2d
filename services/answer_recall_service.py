"""
Answer recall service: fills fields from earlier answers, either straight
from a source field or through a {{fieldId}} template with builtin functions
"""
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from models.base import FormFieldModel
from services.errors import ConfigurationError, MissingReferenceError, UnknownFunctionError
from services.field_graph import TOKEN_RE, FieldGraph, template_references
from services.reports import RecallAnalysis, ValidationReport
from services.response_values import (
    ResponseMap,
    ResponseValue,
    StringArrayValue,
    format_number,
    parse_number,
)

logger = logging.getLogger("backend.answer_recall")

# name( ... {{token}} ... ) with no nested parentheses
FUNCTION_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\(([^()]*\{\{[^{}]+\}\}[^()]*)\)")
STRING_ARG_RE = re.compile(r"'([^']*)'|\"([^\"]*)\"")
# Function calls and bare tokens in one scan; substituted text is never rescanned
TEMPLATE_RE = re.compile(f"{FUNCTION_RE.pattern}|{TOKEN_RE.pattern}")

DEFAULT_DATE_FORMAT = 'YYYY-MM-DD'
DEFAULT_JOIN_SEPARATOR = ','


def template_functions(template: Optional[str]) -> List[str]:
    """Function names called in a template, known or not, in order of first use"""
    if not template:
        return []
    return list(dict.fromkeys(m.group(1) for m in FUNCTION_RE.finditer(template)))


def _parse_date(text: str) -> Optional[datetime]:
    s = text.strip()
    if not s:
        return None
    if s.endswith('Z'):
        s = s[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def format_date(text: str, fmt: str) -> str:
    """Render YYYY, MM, DD, HH, mm, ss placeholders; unparseable input passes through"""
    parsed = _parse_date(text)
    if parsed is None:
        return text
    out = fmt
    for token, value in (
        ('YYYY', f"{parsed.year:04d}"),
        ('MM', f"{parsed.month:02d}"),
        ('DD', f"{parsed.day:02d}"),
        ('HH', f"{parsed.hour:02d}"),
        ('mm', f"{parsed.minute:02d}"),
        ('ss', f"{parsed.second:02d}"),
    ):
        out = out.replace(token, value)
    return out


def _numbers(value: ResponseValue) -> List[float]:
    if isinstance(value, StringArrayValue):
        candidates = [parse_number(i) for i in value.items]
    else:
        candidates = [value.as_number()]
    return [n for n in candidates if n is not None]


def _fn_uppercase(values: List[ResponseValue], args: List[str]) -> str:
    return values[0].as_text().upper() if values else ''


def _fn_lowercase(values: List[ResponseValue], args: List[str]) -> str:
    return values[0].as_text().lower() if values else ''


def _fn_capitalize(values: List[ResponseValue], args: List[str]) -> str:
    text = values[0].as_text() if values else ''
    return text[:1].upper() + text[1:]


def _fn_date_format(values: List[ResponseValue], args: List[str]) -> str:
    text = values[0].as_text() if values else ''
    if not text:
        return ''
    return format_date(text, args[0] if args else DEFAULT_DATE_FORMAT)


def _fn_join(values: List[ResponseValue], args: List[str]) -> str:
    if not values:
        return ''
    separator = args[0] if args else DEFAULT_JOIN_SEPARATOR
    value = values[0]
    if isinstance(value, StringArrayValue):
        return separator.join(value.items)
    return value.as_text()


def _fn_count(values: List[ResponseValue], args: List[str]) -> str:
    if not values:
        return '0'
    value = values[0]
    if isinstance(value, StringArrayValue):
        return str(len(value.items))
    return '0' if value.is_empty() else '1'


def _fn_sum(values: List[ResponseValue], args: List[str]) -> str:
    total = 0.0
    for value in values:
        total += sum(_numbers(value))
    return format_number(total)


TEMPLATE_FUNCTIONS: Dict[str, Callable[[List[ResponseValue], List[str]], str]] = {
    'uppercase': _fn_uppercase,
    'lowercase': _fn_lowercase,
    'capitalize': _fn_capitalize,
    'date_format': _fn_date_format,
    'join': _fn_join,
    'count': _fn_count,
    'sum': _fn_sum,
}


class AnswerRecallService:
    """Resolves recalled values and checks recall configuration"""

    @staticmethod
    def resolve_template(template: str, responses: ResponseMap, field_id: Optional[str] = None) -> str:
        """
        Substitute {{fieldId}} tokens and builtin function calls

        Absent values render as an empty string. Arrays render as ", " joined
        text unless a function says otherwise. Raises UnknownFunctionError for a
        function name outside the builtins.
        """
        def substitute(match: re.Match) -> str:
            name, raw_args, token = match.group(1), match.group(2), match.group(3)
            if name is None:
                return responses.get(token).as_text()
            function = TEMPLATE_FUNCTIONS.get(name)
            if function is None:
                raise UnknownFunctionError(name, field_id)
            values = [responses.get(ref.strip()) for ref in TOKEN_RE.findall(raw_args)]
            args = [a if a else b for a, b in STRING_ARG_RE.findall(TOKEN_RE.sub('', raw_args))]
            return function(values, args)

        return TEMPLATE_RE.sub(substitute, template).strip()

    @staticmethod
    def calculate_recalled_value(field: FormFieldModel, responses: Any) -> Any:
        """
        Recalled value for one field, or None when recall does not apply

        The field never reads its own value. A direct source value is returned
        verbatim; the template is the fallback when the source has no value.
        """
        if not field.has_recall():
            return None
        recall = field.answer_recall
        view = ResponseMap.from_raw(responses).without(field.id)

        if recall.source_field_id:
            source = view.get(recall.source_field_id)
            if not source.is_empty():
                return source.to_raw()

        if recall.template:
            return AnswerRecallService.resolve_template(recall.template, view, field.id)

        return None

    @staticmethod
    def process_answer_recall(fields: List[FormFieldModel], responses: Any) -> Tuple[Dict[str, Any], ValidationReport]:
        """
        Recalled values for every field with recall enabled

        Fields are resolved in display order; each one sees the responses plus
        whatever earlier fields recalled. A field whose template fails is left
        out and reported, the others still resolve.
        """
        base = ResponseMap.from_raw(responses)
        recalled: Dict[str, Any] = {}
        report = ValidationReport()
        for field in fields:
            if not field.has_recall() or field.id in recalled:
                continue
            try:
                value = AnswerRecallService.calculate_recalled_value(field, base.merged(recalled))
            except ConfigurationError as exc:
                logger.debug("recall error field=%s: %s", field.id, exc.message)
                report.add_exception(exc, field.id)
                continue
            if value is not None:
                recalled[field.id] = value
        return recalled, report

    @staticmethod
    def get_field_references(field_id: str, fields: List[FormFieldModel]) -> List[str]:
        """Identifiers the field's recall or logic configuration reads"""
        graph = FieldGraph(fields)
        field = graph.get(field_id)
        if field is None:
            return []
        return graph.references(field)

    @staticmethod
    def get_dependent_fields(field_id: str, fields: List[FormFieldModel]) -> List[str]:
        """Fields that must be re-evaluated when field_id changes"""
        return FieldGraph(fields).dependents(field_id)

    @staticmethod
    def validate_answer_recall(fields: List[FormFieldModel]) -> ValidationReport:
        """Static checks on every field's recall configuration"""
        graph = FieldGraph(fields)
        report = ValidationReport()

        for field in graph.fields:
            if not field.has_recall():
                continue
            recall = field.answer_recall
            own = graph.position(field.id)

            if not recall.source_field_id and not recall.template:
                report.add_error(field.id, ConfigurationError.code, f"Field {field.id}: answer recall is enabled but no source field or template is configured")
            if recall.source_field_id and recall.template:
                report.add_warning(field.id, 'AmbiguousRecall', f"Field {field.id}: has both a source field and a template; the template is used only when the source has no value")

            refs = []
            if recall.source_field_id:
                refs.append(('Answer recall', recall.source_field_id))
            refs.extend(('Template', ref) for ref in template_references(recall.template))
            for label, ref in refs:
                if ref == field.id:
                    report.add_error(field.id, 'SelfReference', f"Field {field.id}: {label} cannot reference itself")
                elif ref not in graph:
                    report.add_warning(field.id, MissingReferenceError.code, f"Field {field.id}: {label} references non-existent field {ref}")
                elif own is not None and graph.position(ref) > own:
                    report.add_warning(field.id, 'ForwardReference', f"Field {field.id}: {label} references a field that comes later in the form ({ref}) and will not see its recalled value")

            for name in template_functions(recall.template):
                if name not in TEMPLATE_FUNCTIONS:
                    report.add_error(field.id, ConfigurationError.code, f"Field {field.id}: template uses unknown function {name}")

        return report

    @staticmethod
    def analyze_recall(fields: List[FormFieldModel]) -> RecallAnalysis:
        """Usage counts, dependencies and recommendations for the builder"""
        analysis = RecallAnalysis(total_fields=len(fields))
        for field in fields:
            if not field.has_recall():
                continue
            recall = field.answer_recall
            analysis.fields_with_answer_recall += 1
            if recall.source_field_id:
                analysis.fields_with_source_field += 1
            if recall.template:
                analysis.fields_with_template += 1
                if template_functions(recall.template):
                    analysis.templates_with_functions += 1
            dependents = AnswerRecallService.get_dependent_fields(field.id, fields)
            if dependents:
                analysis.field_dependencies[field.id] = dependents

        analysis.validation = AnswerRecallService.validate_answer_recall(fields)

        recommendations = []
        if analysis.fields_with_answer_recall == 0:
            recommendations.append('Consider adding answer recall to improve user experience by auto-filling related fields')
        if any(w.code == 'ForwardReference' for w in analysis.validation.warnings):
            recommendations.append('Review forward references in answer recall - they may not work as expected')
        if analysis.fields_with_template > 0 and analysis.templates_with_functions == 0:
            recommendations.append('Consider using template functions like capitalize(), uppercase(), or date_format() for better data formatting')
        if analysis.total_fields and len(analysis.field_dependencies) > analysis.total_fields * 0.3:
            recommendations.append('High number of field dependencies detected - ensure form performance remains optimal')
        analysis.recommendations = recommendations
        return analysis
