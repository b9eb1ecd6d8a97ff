"""
Settings repository: key/value policy overrides.

Librarians tune circulation through rows like ``max_active_loans = 3``.
Values are stored as text. ``load_policy`` layers parseable rows over the
configured defaults. A row that does not parse is logged and ignored, so a
typo in one setting never blocks circulation.
"""

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..circulation.policy import PolicyConfig
from .schema import Setting
from .session import mcp_safe_query

logger = logging.getLogger(__name__)

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def _coerce(key: str, raw: str) -> Any:
    annotation = PolicyConfig.model_fields[key].annotation
    if annotation is bool:
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    return raw.strip()


class SettingsRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_all(self) -> dict[str, str]:
        rows = mcp_safe_query(
            self.session,
            lambda s: s.execute(select(Setting.key, Setting.value)).all(),
            "Failed to read settings",
        )
        return {key: value for key, value in rows}

    def set_many(self, values: dict[str, Any]) -> None:
        """Upsert settings. Booleans are stored as ``"true"``/``"false"``."""
        now = datetime.now()
        for key, value in values.items():
            text_value = str(value).lower() if isinstance(value, bool) else str(value)
            row = self.session.get(Setting, key)
            if row is None:
                self.session.add(Setting(key=key, value=text_value, updated_at=now))
            else:
                row.value = text_value
                row.updated_at = now
        self.session.flush()

    def load_policy(self, defaults: PolicyConfig | None = None) -> PolicyConfig:
        merged = (defaults or PolicyConfig()).model_dump()

        for key, raw in self.get_all().items():
            if key not in PolicyConfig.model_fields:
                continue
            try:
                candidate = {**merged, key: _coerce(key, raw)}
                merged = PolicyConfig.model_validate(candidate).model_dump()
            except (ValueError, ValidationError):
                logger.warning("Ignoring unparseable setting %s=%r", key, raw)

        return PolicyConfig.model_validate(merged)
