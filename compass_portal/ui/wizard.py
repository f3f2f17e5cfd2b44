"""Assessment creation wizard.

The wizard is a linear three-step machine ``DETAILS -> ENVIRONMENT ->
REVIEW``. All state lives in an immutable :class:`WizardState` and every
user action is an event fed through :func:`transition`, a pure function.
REVIEW can only be reached with an environment selected, and any event
that clears the environment while in REVIEW drops back to ENVIRONMENT.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Callable, Mapping, Union

from compass_portal.core.context import PortalContext
from compass_portal.core.errors import LIMIT_REACHED_MESSAGE, ApiError, CompassError
from compass_portal.schemas.assessment import (
    CATALOG,
    AssessmentCategory,
    AssessmentStartRequest,
    AssessmentStartResponse,
    AssessmentType,
    CategoryCatalog,
)
from compass_portal.ui.selector import ClientEnvironmentSelector

logger = logging.getLogger(__name__)

NAME_REQUIRED_MESSAGE = "Please enter an assessment name."
CLIENT_REQUIRED_MESSAGE = "Please select a client."
TYPE_REQUIRED_MESSAGE = "Please select at least one assessment type."
ENVIRONMENT_REQUIRED_MESSAGE = "Please select an Azure environment."
SUBMIT_FAILED_MESSAGE = "Failed to create assessment(s). Please try again."


class WizardStep(IntEnum):
    DETAILS = 1
    ENVIRONMENT = 2
    REVIEW = 3


@dataclass(frozen=True)
class WizardState:
    category: AssessmentCategory
    name: str
    selected_types: frozenset = frozenset()
    step: WizardStep = WizardStep.DETAILS
    client_id: str | None = None
    environment_id: str | None = None
    available_environments: tuple[str, ...] = ()
    use_client_preferences: bool = False
    error: str = ""

    @classmethod
    def initial(cls, category: AssessmentCategory) -> "WizardState":
        catalog = CATALOG[category]
        return cls(
            category=category,
            name=catalog.default_name,
            selected_types=frozenset({catalog.recommended}),
        )

    @property
    def catalog(self) -> CategoryCatalog:
        return CATALOG[self.category]

    @property
    def can_use_client_preferences(self) -> bool:
        return bool(self.client_id and self.environment_id)

    @property
    def ordered_types(self) -> list[AssessmentType]:
        return sorted(self.selected_types)

    def assessment_names(self) -> list[tuple[AssessmentType, str]]:
        """Name each selected type receives on submit."""
        base = self.name.strip()
        types = self.ordered_types
        if len(types) == 1:
            return [(types[0], base)]
        return [(t, f"{base} - {t.label}") for t in types]


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class SetName:
    name: str


@dataclass(frozen=True)
class SelectClient:
    client_id: str | None


@dataclass(frozen=True)
class EnvironmentsLoaded:
    client_id: str
    environment_ids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ToggleType:
    assessment_type: AssessmentType


@dataclass(frozen=True)
class SelectEnvironment:
    environment_id: str | None


@dataclass(frozen=True)
class SetUsePreferences:
    enabled: bool


@dataclass(frozen=True)
class SubmitFailed:
    message: str


WizardEvent = Union[
    Next,
    Back,
    Reset,
    SetName,
    SelectClient,
    EnvironmentsLoaded,
    ToggleType,
    SelectEnvironment,
    SetUsePreferences,
    SubmitFailed,
]


def validate_step(state: WizardState) -> str:
    """Blocking error for the current step, or an empty string."""
    if state.step == WizardStep.DETAILS:
        if not state.name.strip():
            return NAME_REQUIRED_MESSAGE
        if not state.client_id:
            return CLIENT_REQUIRED_MESSAGE
        if not state.selected_types:
            return TYPE_REQUIRED_MESSAGE
    elif state.step == WizardStep.ENVIRONMENT:
        if not state.environment_id:
            return ENVIRONMENT_REQUIRED_MESSAGE
    return ""


def _settle(state: WizardState) -> WizardState:
    if not state.environment_id and state.use_client_preferences:
        state = replace(state, use_client_preferences=False)
    if state.step == WizardStep.REVIEW and not state.environment_id:
        state = replace(state, step=WizardStep.ENVIRONMENT)
    return state


def transition(state: WizardState, event: WizardEvent) -> WizardState:
    """Apply one event; illegal requests leave the state unchanged."""
    if isinstance(event, Next):
        error = validate_step(state)
        if error:
            return replace(state, error=error)
        if state.step == WizardStep.REVIEW:
            return replace(state, error="")
        return replace(state, step=WizardStep(state.step + 1), error="")

    if isinstance(event, Back):
        if state.step == WizardStep.DETAILS:
            return state
        return replace(state, step=WizardStep(state.step - 1), error="")

    if isinstance(event, Reset):
        return WizardState.initial(state.category)

    if isinstance(event, SetName):
        return replace(state, name=event.name)

    if isinstance(event, SelectClient):
        client_id = event.client_id or None
        if client_id == state.client_id:
            return state
        return _settle(
            replace(
                state,
                client_id=client_id,
                environment_id=None,
                available_environments=(),
                use_client_preferences=False,
            )
        )

    if isinstance(event, EnvironmentsLoaded):
        if event.client_id != state.client_id:
            return state
        available = tuple(event.environment_ids)
        environment_id = state.environment_id if state.environment_id in available else None
        return _settle(
            replace(state, available_environments=available, environment_id=environment_id)
        )

    if isinstance(event, ToggleType):
        offered = {option.type for option in state.catalog.options}
        if event.assessment_type not in offered:
            return state
        selected = set(state.selected_types)
        selected.symmetric_difference_update({event.assessment_type})
        return replace(state, selected_types=frozenset(selected))

    if isinstance(event, SelectEnvironment):
        environment_id = event.environment_id or None
        if environment_id is not None and environment_id not in state.available_environments:
            return state
        return _settle(replace(state, environment_id=environment_id))

    if isinstance(event, SetUsePreferences):
        if event.enabled and not state.can_use_client_preferences:
            return state
        return replace(state, use_client_preferences=event.enabled)

    if isinstance(event, SubmitFailed):
        return replace(state, error=event.message)

    raise TypeError(f"Unknown wizard event: {event!r}")


def submit_error_message(error: CompassError) -> str:
    """402 gets the limit message, a server ``error`` field is shown as is, anything else is generic."""
    if isinstance(error, ApiError):
        if error.status_code == 402:
            return LIMIT_REACHED_MESSAGE
        payload = error.payload
        if isinstance(payload, Mapping):
            text = payload.get("error") or payload.get("Error")
            if isinstance(text, str) and text.strip():
                return text.strip()
    return SUBMIT_FAILED_MESSAGE


# =============================================================================
# Wizard controller
# =============================================================================


class AssessmentWizard:
    """Async shell around the pure state machine.

    Loads clients and environments, feeds events through
    :func:`transition` and submits one creation request per selected type.

    Args:
        ctx: Portal context
        category: Which family of assessment types is offered
        on_created: Called once per created assessment
    """

    def __init__(
        self,
        ctx: PortalContext,
        category: AssessmentCategory = AssessmentCategory.RESOURCE_GOVERNANCE,
        on_created: Callable[[AssessmentStartResponse], None] | None = None,
    ):
        self.ctx = ctx
        self.service = ctx.services.assessments
        self.selector = ClientEnvironmentSelector(ctx)
        self.on_created = on_created
        self.state = WizardState.initial(category)
        self.is_submitting = False
        self._generation = 0

    @property
    def step(self) -> WizardStep:
        return self.state.step

    @property
    def error(self) -> str:
        return self.state.error

    @property
    def catalog(self) -> CategoryCatalog:
        return self.state.catalog

    def dispatch(self, event: WizardEvent) -> WizardState:
        self.state = transition(self.state, event)
        return self.state

    async def open(self) -> None:
        await self.selector.load_clients()
        if self.ctx.selected_client_id:
            await self.select_client(self.ctx.selected_client_id)

    async def select_client(self, client_id: str | None) -> None:
        client_id = client_id or None
        unchanged = client_id == self.state.client_id == self.selector.client_id
        if client_id and unchanged and not self.selector.error:
            return
        self.dispatch(SelectClient(client_id))
        environments = await self.selector.select_client(client_id)
        if client_id and self.selector.client_id == client_id:
            self.dispatch(EnvironmentsLoaded(client_id, tuple(env.id for env in environments)))

    def set_name(self, name: str) -> None:
        self.dispatch(SetName(name))

    def toggle_type(self, assessment_type: AssessmentType) -> None:
        self.dispatch(ToggleType(AssessmentType(assessment_type)))

    def select_environment(self, environment_id: str | None) -> None:
        self.dispatch(SelectEnvironment(environment_id))
        if self.state.environment_id == (environment_id or None):
            self.selector.select_environment(environment_id)

    def set_use_client_preferences(self, enabled: bool) -> None:
        self.dispatch(SetUsePreferences(enabled))
        self.selector.set_use_client_preferences(self.state.use_client_preferences)

    def next(self) -> WizardStep:
        return self.dispatch(Next()).step

    def back(self) -> WizardStep:
        return self.dispatch(Back()).step

    @property
    def estimated_total_minutes(self) -> int:
        return sum(
            self.catalog.option(t).estimated_minutes[1]
            for t in self.state.ordered_types
        )

    def build_requests(self) -> list[AssessmentStartRequest]:
        state = self.state
        return [
            AssessmentStartRequest(
                environment_id=state.environment_id,
                name=name,
                type=assessment_type,
                use_client_preferences=state.use_client_preferences,
            )
            for assessment_type, name in state.assessment_names()
        ]

    async def submit(self) -> list[AssessmentStartResponse] | None:
        """Create every selected assessment in parallel.

        Succeeds only if all requests succeed. On failure the wizard stays
        open on REVIEW with an error; assessments that were created are
        not rolled back. A result arriving after :meth:`close` is dropped.
        """
        if self.state.step != WizardStep.REVIEW or self.is_submitting:
            return None

        requests = self.build_requests()
        generation = self._generation
        self.is_submitting = True
        try:
            responses = await asyncio.gather(*(self.service.start(r) for r in requests))
        except CompassError as e:
            logger.error(f"Creating {len(requests)} assessment(s) failed: {e}")
            if self._generation == generation:
                self.dispatch(SubmitFailed(submit_error_message(e)))
            return None
        finally:
            if self._generation == generation:
                self.is_submitting = False

        if self._generation != generation:
            logger.info(f"Wizard closed while creating {len(responses)} assessment(s); result dropped")
            return None

        logger.info(f"Created {len(responses)} assessment(s) for environment {self.state.environment_id}")
        if self.on_created:
            for response in responses:
                self.on_created(response)
        self.close()
        return list(responses)

    def close(self) -> None:
        """Discard everything and return to the initial defaults."""
        self._generation += 1
        self.state = WizardState.initial(self.state.category)
        self.selector.reset()
        self.is_submitting = False
