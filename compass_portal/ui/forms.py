"""Controlled form state shared by the portal dialogs."""

import logging
from typing import Any, Awaitable, Callable, ClassVar, Mapping

from compass_portal.core.errors import CompassError, describe_error

logger = logging.getLogger(__name__)


class FormState:
    """Field values, per-field errors, a banner error and a loading flag.

    Subclasses list their fields in ``fields`` and implement
    :meth:`validate`. Editing a field clears that field's error only.
    """

    fields: ClassVar[tuple[str, ...]] = ()

    def __init__(self, **initial: str):
        self.values: dict[str, str] = {}
        self.errors: dict[str, str] = {}
        self.error = ""
        self.is_loading = False
        self.reset(**initial)

    def reset(self, **initial: str) -> None:
        self.values = {name: "" for name in self.fields}
        for name, value in initial.items():
            self._check_field(name)
            self.values[name] = "" if value is None else str(value)
        self.errors = {}
        self.error = ""
        self.is_loading = False

    def _check_field(self, name: str) -> None:
        if name not in self.fields:
            raise KeyError(f"{type(self).__name__} has no field {name!r}")

    def __getitem__(self, name: str) -> str:
        return self.values[name]

    def set_field(self, name: str, value: str) -> None:
        self._check_field(name)
        self.values[name] = value
        self.errors.pop(name, None)

    def clean(self, name: str) -> str | None:
        """Trimmed value, or None when blank."""
        value = self.values.get(name, "").strip()
        return value or None

    def validate(self) -> dict[str, str]:
        return {}

    def is_valid(self) -> bool:
        self.errors = self.validate()
        if self.errors:
            logger.debug(f"{type(self).__name__} failed validation: {sorted(self.errors)}")
        return not self.errors

    @property
    def can_submit(self) -> bool:
        return not self.is_loading

    async def run(
        self,
        action: Callable[[], Awaitable[Any]],
        default_error: str,
        overrides: Mapping[int, str] | None = None,
    ) -> Any:
        """Await ``action`` with the loading flag held.

        Portal errors are turned into :attr:`error` and None is returned.
        A call made while another is in flight is ignored.
        """
        if self.is_loading:
            logger.debug(f"{type(self).__name__}: submission already in flight")
            return None

        self.is_loading = True
        self.error = ""
        try:
            return await action()
        except CompassError as e:
            self.error = describe_error(e, default_error, overrides)
            logger.warning(f"{type(self).__name__} request failed: {e}")
            return None
        finally:
            self.is_loading = False
