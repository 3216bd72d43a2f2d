"""
Utility functions for validating form definitions using Pydantic models
"""
from typing import Dict, Any, Type, TypeVar, Union, List
from pydantic import BaseModel, TypeAdapter, ValidationError

from models.base import FormModel, FormFieldModel, display_order

T = TypeVar('T', bound=BaseModel)

_FIELD_LIST = TypeAdapter(List[FormFieldModel])


def _errors(exc: ValidationError) -> List[Dict[str, Any]]:
    # ctx may hold exception instances, which are not JSON serializable
    return [{k: v for k, v in err.items() if k != 'ctx'} for err in exc.errors(include_url=False)]


def validate_data(data: Dict[str, Any], model_class: Type[T]) -> tuple[bool, Union[T, List[Dict[str, Any]]]]:
    """
    Validate and sanitize input data using a Pydantic model

    Args:
        data: The input data to validate
        model_class: The Pydantic model class to use for validation

    Returns:
        Tuple of (is_valid, result) where:
        - is_valid: Boolean indicating if validation passed
        - result: Either the validated model instance or a list of validation errors
    """
    try:
        return True, model_class.model_validate(data)
    except ValidationError as e:
        return False, _errors(e)


def sanitize_for_storage(model_instance: BaseModel) -> Dict[str, Any]:
    """
    Convert a validated Pydantic model to a JSON-ready dictionary

    camelCase aliases are kept so stored documents match what the builder sends.
    """
    return model_instance.model_dump(mode='json', by_alias=True, exclude_none=True)


def validate_form(form_data: Dict[str, Any]) -> tuple[bool, Union[FormModel, List[Dict[str, Any]]]]:
    """Validate and sanitize a form document"""
    return validate_data(form_data, FormModel)


def validate_fields(fields: List[Dict[str, Any]]) -> tuple[bool, Union[List[FormFieldModel], List[Dict[str, Any]]]]:
    """Validate a bare field list and return it in display order"""
    try:
        return True, display_order(_FIELD_LIST.validate_python(fields))
    except ValidationError as e:
        return False, _errors(e)
