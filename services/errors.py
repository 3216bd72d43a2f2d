"""
Error taxonomy for form logic evaluation
"""
from typing import Optional


class FormLogicError(Exception):
    """Base class for problems in a form's logic or recall configuration"""

    code = "FormLogicError"

    def __init__(self, message: str, field_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field_id = field_id


class ConfigurationError(FormLogicError):
    """Malformed logic definition (unknown operator, action, combinator or function)"""

    code = "ConfigurationError"


class UnknownFunctionError(ConfigurationError):
    """Template calls a function that is not a recall builtin"""

    def __init__(self, function_name: str, field_id: Optional[str] = None):
        super().__init__(f"Unknown template function: {function_name}", field_id)
        self.function_name = function_name


class MissingReferenceError(FormLogicError):
    """A referenced field identifier does not exist.

    Evaluation treats the reference as "no value"; this class only names the
    warning code in validation reports.
    """

    code = "MissingReferenceError"
