"""
File-backed store for form documents (one JSON file per form under data/forms)
"""
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends

from models.base import FormModel
from models.validators import sanitize_for_storage
from utils.settings import Settings, get_settings

logger = logging.getLogger("backend.forms_store")

_FORM_ID_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_")


class FormsStore:
    """Loads and saves form documents as JSON files"""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(self.data_dir, exist_ok=True)

    def _form_path(self, form_id: str) -> str:
        if not form_id or not set(form_id) <= _FORM_ID_CHARS:
            # Never build paths from ids that could escape the data directory
            raise ValueError(f"Invalid form id: {form_id!r}")
        return os.path.join(self.data_dir, f"{form_id}.json")

    def load_raw(self, form_id: str) -> Optional[Dict[str, Any]]:
        try:
            path = self._form_path(form_id)
        except ValueError:
            return None
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def load_form(self, form_id: str) -> Optional[FormModel]:
        """Load and validate a form; None when missing"""
        data = self.load_raw(form_id)
        if data is None:
            return None
        form = FormModel.model_validate({**data, "id": data.get("id") or form_id})
        return form

    def save_form(self, form: FormModel) -> FormModel:
        """Persist a validated form, assigning an id on first save"""
        now = datetime.now(timezone.utc)
        form_id = form.id or uuid.uuid4().hex
        saved = form.model_copy(update={
            "id": form_id,
            "created_at": form.created_at or now,
            "updated_at": now,
        })
        path = self._form_path(form_id)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(sanitize_for_storage(saved), f, ensure_ascii=False, indent=2)
        logger.info("saved form id=%s fields=%s", form_id, len(saved.fields))
        return saved


def get_forms_store(settings: Settings = Depends(get_settings)) -> FormsStore:
    """FastAPI dependency"""
    return FormsStore(settings.forms_data_dir)
