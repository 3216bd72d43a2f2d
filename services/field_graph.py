"""
Field index for a single form: identifier lookup, display positions and
the references each field's logic or recall configuration makes.
"""
import re
from typing import Dict, Iterable, List, Optional

from models.base import FormFieldModel

TOKEN_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def template_references(template: Optional[str]) -> List[str]:
    """Field identifiers referenced by {{ }} tokens, in order of first use"""
    if not template:
        return []
    return list(dict.fromkeys(m.group(1) for m in TOKEN_RE.finditer(template)))


def _unique(ids: Iterable[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(i for i in ids if i))


class FieldGraph:
    """Fields indexed by identifier, in display order"""

    def __init__(self, fields: List[FormFieldModel]):
        self.fields = list(fields)
        self._by_id: Dict[str, FormFieldModel] = {}
        self._position: Dict[str, int] = {}
        self.duplicates: List[str] = []
        for index, field in enumerate(self.fields):
            if field.id in self._by_id:
                # First declaration wins for lookups
                self.duplicates.append(field.id)
                continue
            self._by_id[field.id] = field
            self._position[field.id] = index

    @property
    def ids(self) -> List[str]:
        return [f.id for f in self.fields]

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._by_id

    def get(self, field_id: Optional[str]) -> Optional[FormFieldModel]:
        if not field_id:
            return None
        return self._by_id.get(field_id)

    def position(self, field_id: Optional[str]) -> Optional[int]:
        if not field_id:
            return None
        return self._position.get(field_id)

    def declared_before(self, a: str, b: str) -> bool:
        pa, pb = self.position(a), self.position(b)
        return pa is not None and pb is not None and pa < pb

    @staticmethod
    def logic_references(field: FormFieldModel) -> List[str]:
        refs: List[Optional[str]] = []
        if field.has_logic():
            refs.extend(c.field_id for c in field.conditional_logic.conditions)
        if field.has_skip_logic():
            refs.extend(c.field_id for c in field.skip_logic.conditions)
        return _unique(refs)

    @staticmethod
    def recall_references(field: FormFieldModel) -> List[str]:
        if not field.has_recall():
            return []
        recall = field.answer_recall
        return _unique([recall.source_field_id, *template_references(recall.template)])

    def references(self, field: FormFieldModel) -> List[str]:
        """Other field identifiers this field's logic or recall reads"""
        return [r for r in _unique(self.logic_references(field) + self.recall_references(field)) if r != field.id]

    def dependents(self, field_id: str) -> List[str]:
        """Fields whose logic or recall reads field_id"""
        return _unique(f.id for f in self.fields if f.id != field_id and field_id in self.references(f))

    def forward_references(self, field: FormFieldModel) -> List[str]:
        """Referenced identifiers declared after the field"""
        own = self.position(field.id)
        if own is None:
            return []
        later = []
        for ref in self.references(field):
            pos = self.position(ref)
            if pos is not None and pos > own:
                later.append(ref)
        return later

    def missing_references(self, field: FormFieldModel) -> List[str]:
        return [r for r in self.references(field) if r not in self._by_id]
