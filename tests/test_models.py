"""Tests for form models, validation helpers and the file-backed store."""
import json

import pytest

from models.base import FormModel
from models.validators import sanitize_for_storage, validate_fields, validate_form
from services.forms_store import FormsStore


class TestFormModels:
    def test_fields_are_sorted_by_order_then_position(self):
        ok, form = validate_form({"fields": [
            {"id": "b", "order": 1},
            {"id": "a", "order": 0},
            {"id": "c", "order": 1},
        ]})
        assert ok
        assert [f.id for f in form.fields] == ["a", "b", "c"]

    def test_labels_are_sanitized_but_logic_literals_are_not(self):
        ok, fields = validate_fields([{
            "id": "q",
            "label": "<script>alert(1)</script>Name",
            "conditionalLogic": {"conditions": [{"fieldId": "p", "operator": "equals", "value": "<b>"}]},
        }])
        assert ok
        assert "<script>" not in fields[0].label
        assert fields[0].conditional_logic.conditions[0].value == "<b>"

    def test_logic_defaults(self):
        ok, fields = validate_fields([{"id": "q", "conditionalLogic": {}, "answerRecall": {}}])
        assert ok
        logic = fields[0].conditional_logic
        assert (logic.enabled, logic.action, logic.combinator) == (True, "show", "AND")
        assert fields[0].has_logic()
        assert not fields[0].has_recall()

    def test_blank_recall_source_is_none(self):
        ok, fields = validate_fields([{"id": "q", "answerRecall": {"enabled": True, "sourceFieldId": "  "}}])
        assert ok
        assert fields[0].answer_recall.source_field_id is None

    @pytest.mark.parametrize("field_id", ["", "has space", "a{b}", "x" * 129])
    def test_invalid_field_ids_are_rejected(self, field_id):
        ok, errors = validate_fields([{"id": field_id}])
        assert not ok
        assert errors[0]["loc"][-1] == "id"

    def test_unknown_field_type_is_rejected(self):
        ok, errors = validate_fields([{"id": "q", "type": "hologram"}])
        assert not ok
        json.dumps(errors)

    def test_storage_form_uses_camel_case_aliases(self):
        form = FormModel.model_validate({"userId": "u1", "isPublished": True, "fields": [
            {"id": "q", "answerRecall": {"enabled": True, "sourceFieldId": "p"}},
        ]})
        stored = sanitize_for_storage(form)
        assert stored["userId"] == "u1"
        assert stored["isPublished"] is True
        assert stored["fields"][0]["answerRecall"]["sourceFieldId"] == "p"
        assert "placeholder" not in stored["fields"][0]


class TestFormsStore:
    def test_save_then_load(self, tmp_path):
        store = FormsStore(str(tmp_path))
        saved = store.save_form(FormModel.model_validate({"userId": "u1", "fields": [{"id": "q"}]}))

        assert saved.id
        assert saved.created_at is not None
        assert (tmp_path / f"{saved.id}.json").exists()

        loaded = store.load_form(saved.id)
        assert loaded.user_id == "u1"
        assert [f.id for f in loaded.fields] == ["q"]

    def test_missing_and_invalid_ids_load_as_none(self, tmp_path):
        store = FormsStore(str(tmp_path))
        assert store.load_form("does-not-exist") is None
        assert store.load_form("../etc/passwd") is None
        assert store.load_raw("") is None

    def test_invalid_id_cannot_be_saved(self, tmp_path):
        store = FormsStore(str(tmp_path))
        with pytest.raises(ValueError):
            store.save_form(FormModel.model_validate({"id": "../escape", "userId": "u1"}))
