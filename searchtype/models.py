from __future__ import annotations

from typing import Any

from pydantic import BaseModel, model_validator


class ResponseModel(BaseModel):
    """Base model for service answers.

    A JSON ``null``, whether the whole body or a declared field, decodes
    to the field defaults, the same as a missing key.
    """

    @model_validator(mode="before")
    @classmethod
    def _null_as_default(cls, data: Any) -> Any:
        if data is None:
            return {}
        if isinstance(data, dict):
            return {
                k: v
                for k, v in data.items()
                if v is not None or k not in cls.model_fields
            }
        return data
