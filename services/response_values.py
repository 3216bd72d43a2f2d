"""
Typed response values.

Submitted answers arrive as loose JSON (strings, numbers, lists, file objects).
They are coerced once into a closed set of value kinds so the condition
evaluator and the template resolver never branch on raw Python types.
"""
import json
import math
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict


_FILE_REF_KEYS = ("url", "fileId", "file_id", "path")


def format_number(value: float) -> str:
    # inf and nan render as text and never parse back as numbers
    if not math.isfinite(value):
        return str(value)
    if value == int(value):
        return str(int(value))
    return str(value)


def json_safe(raw: Any) -> Any:
    """Copy of raw with non-finite floats replaced by their text, so it always serializes"""
    if isinstance(raw, float) and not math.isfinite(raw):
        return str(raw)
    if isinstance(raw, dict):
        return {k: json_safe(v) for k, v in raw.items()}
    if isinstance(raw, (list, tuple)):
        return [json_safe(v) for v in raw]
    return raw


def parse_number(text: Any) -> Optional[float]:
    """Parse a number from a string or number, None when not numeric"""
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        try:
            number = float(text)
        except OverflowError:
            return None
    elif isinstance(text, str):
        s = text.strip()
        if not s:
            return None
        try:
            number = float(s)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


class _Value(BaseModel):
    model_config = ConfigDict(frozen=True)

    def is_empty(self) -> bool:
        return False

    def as_text(self) -> str:
        return ""

    def as_number(self) -> Optional[float]:
        return None

    def to_raw(self) -> Any:
        return None


class AbsentValue(_Value):
    kind: Literal["absent"] = "absent"

    def is_empty(self) -> bool:
        return True


class StringValue(_Value):
    kind: Literal["string"] = "string"
    value: str

    def is_empty(self) -> bool:
        return self.value == ""

    def as_text(self) -> str:
        return self.value

    def as_number(self) -> Optional[float]:
        return parse_number(self.value)

    def to_raw(self) -> Any:
        return self.value


class StringArrayValue(_Value):
    kind: Literal["string_array"] = "string_array"
    items: List[str]

    def is_empty(self) -> bool:
        return len(self.items) == 0

    def as_text(self) -> str:
        return ", ".join(self.items)

    def to_raw(self) -> Any:
        return list(self.items)


class FileRefValue(_Value):
    """Reference to an uploaded file (the upload itself lives elsewhere)"""
    kind: Literal["file_ref"] = "file_ref"
    ref: Dict[str, Any]

    def as_text(self) -> str:
        for key in ("name", "filename", "url", "fileId", "file_id", "path"):
            v = self.ref.get(key)
            if v:
                return str(v)
        return ""

    def to_raw(self) -> Any:
        return dict(self.ref)


ResponseValue = Union[AbsentValue, StringValue, StringArrayValue, FileRefValue]

ABSENT = AbsentValue()


def coerce_value(raw: Any) -> ResponseValue:
    """Convert an untyped JSON value into a ResponseValue"""
    if isinstance(raw, _Value):
        return raw  # type: ignore[return-value]
    if raw is None:
        return ABSENT
    if isinstance(raw, str):
        return StringValue(value=raw)
    if isinstance(raw, bool):
        return StringValue(value="true" if raw else "false")
    if isinstance(raw, (int, float)):
        return StringValue(value=format_number(float(raw)) if isinstance(raw, float) else str(raw))
    if isinstance(raw, (list, tuple)):
        items = []
        for item in raw:
            if item is None:
                continue
            if isinstance(item, float):
                items.append(format_number(item))
            elif isinstance(item, int) and not isinstance(item, bool):
                items.append(str(item))
            elif isinstance(item, str):
                items.append(item)
            else:
                items.append(coerce_value(item).as_text())
        return StringArrayValue(items=items)
    if isinstance(raw, dict):
        if any(k in raw for k in _FILE_REF_KEYS):
            return FileRefValue(ref=json_safe(dict(raw)))
        return StringValue(value=json.dumps(raw, ensure_ascii=False, sort_keys=True))
    return StringValue(value=str(raw))


class ResponseMap:
    """Field identifier -> ResponseValue, built per request and never persisted"""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, ResponseValue] = {}
        for key, raw in (values or {}).items():
            value = coerce_value(raw)
            if not isinstance(value, AbsentValue):
                self._values[str(key)] = value

    @classmethod
    def from_raw(cls, values: Optional[Mapping[str, Any]]) -> "ResponseMap":
        if isinstance(values, ResponseMap):
            return values
        return cls(values)

    def get(self, field_id: Optional[str]) -> ResponseValue:
        if not field_id:
            return ABSENT
        return self._values.get(field_id, ABSENT)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._values

    def merged(self, overlay: Mapping[str, Any]) -> "ResponseMap":
        """New map with overlay values replacing existing ones"""
        result = ResponseMap()
        result._values = dict(self._values)
        for key, raw in overlay.items():
            value = coerce_value(raw)
            if isinstance(value, AbsentValue):
                result._values.pop(key, None)
            else:
                result._values[key] = value
        return result

    def without(self, field_id: str) -> "ResponseMap":
        result = ResponseMap()
        result._values = {k: v for k, v in self._values.items() if k != field_id}
        return result

    def to_raw(self) -> Dict[str, Any]:
        return {k: v.to_raw() for k, v in self._values.items()}
