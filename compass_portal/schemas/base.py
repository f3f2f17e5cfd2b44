"""Base models for backend payloads.

The backend answers with PascalCase keys on some endpoints and camelCase
on others. :class:`CompassModel` folds every incoming key (case and
underscores ignored) onto the declared field names, so nothing above the
API client ever sees the raw casing.
"""

import re
from typing import Any, ClassVar, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from compass_portal.core.errors import ResponseFormatError

_FOLD_PATTERN = re.compile(r"[_\-\s]")


def fold_key(key: Any) -> str:
    """Canonical form of a payload key: ``AzureEnvironmentId`` -> ``azureenvironmentid``."""
    return _FOLD_PATTERN.sub("", str(key)).lower()


class CompassModel(BaseModel):
    """Read model for backend responses.

    Subclasses may list extra spellings in ``key_aliases`` mapping an
    external key to a field name, e.g. ``{"AssessmentId": "id"}``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key_aliases: ClassVar[dict[str, str]] = {}

    @classmethod
    def _key_lookup(cls) -> dict[str, str]:
        lookup = {}
        for alias, name in cls.key_aliases.items():
            lookup[fold_key(alias)] = name
        for name, info in cls.model_fields.items():
            lookup[fold_key(name)] = name
            if info.alias:
                lookup[fold_key(info.alias)] = name
        return lookup

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data

        lookup = cls._key_lookup()
        normalized: dict[str, Any] = {}
        for key, value in data.items():
            name = lookup.get(fold_key(key))
            if name is None:
                continue
            # Keep the first non-null value when two spellings collide
            if normalized.get(name) is not None:
                continue
            normalized[name] = value
        return normalized


class RequestModel(BaseModel):
    """Outgoing request body, serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self, **kwargs) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


def parse(model: type[BaseModel], data: Any) -> Any:
    """Validate one payload into ``model``.

    Raises:
        ResponseFormatError: The payload does not fit the model
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ResponseFormatError(model.__name__, e) from e


def normalize(model: type[BaseModel], data: Any) -> Any:
    """Validate a single payload or a list of payloads into ``model``."""
    if data is None:
        return None
    if isinstance(data, list):
        return [parse(model, item) for item in data]
    return parse(model, data)
