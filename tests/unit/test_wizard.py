"""Tests for the assessment creation wizard and client/environment selector."""

import asyncio
import json
from dataclasses import replace
from unittest.mock import AsyncMock

import httpx
import pytest

from compass_portal.core.errors import LIMIT_REACHED_MESSAGE, ApiError, NetworkError
from compass_portal.schemas.assessment import AssessmentCategory, AssessmentStartResponse, AssessmentType
from compass_portal.schemas.environment import AzureEnvironment
from compass_portal.ui.selector import ClientEnvironmentSelector
from compass_portal.ui.wizard import (
    CLIENT_REQUIRED_MESSAGE,
    ENVIRONMENT_REQUIRED_MESSAGE,
    SUBMIT_FAILED_MESSAGE,
    TYPE_REQUIRED_MESSAGE,
    AssessmentWizard,
    Back,
    EnvironmentsLoaded,
    Next,
    SelectClient,
    SelectEnvironment,
    SetName,
    SetUsePreferences,
    ToggleType,
    WizardState,
    WizardStep,
    submit_error_message,
    transition,
)
from tests.conftest import ACME_ID, PROD_ID


def run(state, *events):
    for event in events:
        state = transition(state, event)
    return state


@pytest.fixture
def at_environment():
    """Governance wizard on the ENVIRONMENT step with Prod selected."""
    return run(
        WizardState.initial(AssessmentCategory.RESOURCE_GOVERNANCE),
        SetName("Quarterly review"),
        SelectClient(ACME_ID),
        EnvironmentsLoaded(ACME_ID, (PROD_ID,)),
        Next(),
        SelectEnvironment(PROD_ID),
    )


@pytest.fixture
def wizard_backend(backend, acme, prod_environment):
    created = []

    def start(request):
        created.append(request)
        return {"assessmentId": f"a-{len(created)}", "status": "Pending"}

    backend.add("GET", "/Client", [acme])
    backend.add("GET", f"/AzureEnvironment/client/{ACME_ID}", [prod_environment])
    backend.add("POST", "/assessments", start, status=201)
    return backend


async def reach_review(wizard):
    await wizard.open()
    await wizard.select_client(ACME_ID)
    assert wizard.next() == WizardStep.ENVIRONMENT
    wizard.select_environment(PROD_ID)


class TestTransitions:
    """Tests for the pure state machine."""

    def test_initial_state(self):
        state = WizardState.initial(AssessmentCategory.RESOURCE_GOVERNANCE)
        assert state.step == WizardStep.DETAILS
        assert state.name == "Resource Governance Assessment"
        assert state.selected_types == {AssessmentType.GOVERNANCE_FULL}

    def test_back_then_next_is_identity(self, at_environment):
        assert run(at_environment, Back(), Next()) == at_environment

        review = run(at_environment, Next())
        assert review.step == WizardStep.REVIEW
        assert run(review, Back(), Next()) == review

    def test_back_on_first_step(self):
        state = WizardState.initial(AssessmentCategory.SECURITY_POSTURE)
        assert transition(state, Back()) is state

    def test_next_requires_client(self):
        state = transition(WizardState.initial(AssessmentCategory.RESOURCE_GOVERNANCE), Next())
        assert state.step == WizardStep.DETAILS
        assert state.error == CLIENT_REQUIRED_MESSAGE

    def test_next_requires_a_type(self):
        state = run(
            WizardState.initial(AssessmentCategory.RESOURCE_GOVERNANCE),
            SelectClient(ACME_ID),
            ToggleType(AssessmentType.GOVERNANCE_FULL),
            Next(),
        )
        assert state.step == WizardStep.DETAILS
        assert state.error == TYPE_REQUIRED_MESSAGE

    def test_review_unreachable_without_environment(self, at_environment):
        state = run(at_environment, SelectEnvironment(None), Next())
        assert state.step == WizardStep.ENVIRONMENT
        assert state.error == ENVIRONMENT_REQUIRED_MESSAGE

    def test_clearing_environment_in_review_drops_back(self, at_environment):
        review = run(at_environment, SetUsePreferences(True), Next())
        state = transition(review, SelectEnvironment(None))
        assert state.step == WizardStep.ENVIRONMENT
        assert not state.use_client_preferences

    def test_unknown_environment_ignored(self, at_environment):
        assert transition(at_environment, SelectEnvironment("elsewhere")) == at_environment

    def test_changing_client_clears_environment(self, at_environment):
        state = run(at_environment, SetUsePreferences(True), SelectClient("other-client"))
        assert state.environment_id is None
        assert state.available_environments == ()
        assert not state.use_client_preferences

    def test_stale_environment_list_ignored(self, at_environment):
        assert transition(at_environment, EnvironmentsLoaded("other-client", ("x",))) == at_environment

    def test_preferences_need_environment(self):
        state = run(
            WizardState.initial(AssessmentCategory.RESOURCE_GOVERNANCE),
            SelectClient(ACME_ID),
            SetUsePreferences(True),
        )
        assert not state.use_client_preferences

    def test_types_outside_category_ignored(self):
        state = WizardState.initial(AssessmentCategory.RESOURCE_GOVERNANCE)
        assert transition(state, ToggleType(AssessmentType.CONDITIONAL_ACCESS)) == state

    def test_assessment_names(self):
        state = WizardState.initial(AssessmentCategory.RESOURCE_GOVERNANCE)
        state = replace(state, name="Q1")
        assert state.assessment_names() == [(AssessmentType.GOVERNANCE_FULL, "Q1")]

        state = transition(state, ToggleType(AssessmentType.NAMING_CONVENTION))
        assert state.assessment_names() == [
            (AssessmentType.NAMING_CONVENTION, "Q1 - Naming Convention Only"),
            (AssessmentType.GOVERNANCE_FULL, "Q1 - Governance: Full Assessment"),
        ]


class TestAssessmentWizard:
    """Tests for submitting through the API."""

    @pytest.mark.asyncio
    async def test_full_assessment_payload(self, ctx, wizard_backend):
        created = []
        wizard = AssessmentWizard(ctx, AssessmentCategory.RESOURCE_GOVERNANCE, on_created=created.append)
        await reach_review(wizard)
        wizard.set_use_client_preferences(True)
        assert wizard.next() == WizardStep.REVIEW

        responses = await wizard.submit()

        assert wizard_backend.bodies("POST", "/assessments") == [{
            "environmentId": PROD_ID,
            "name": "Resource Governance Assessment",
            "type": 2,
            "useClientPreferences": True,
        }]
        assert [r.id for r in responses] == ["a-1"]
        assert created == responses
        assert wizard.step == WizardStep.DETAILS
        assert wizard.state.client_id is None

    @pytest.mark.asyncio
    async def test_two_types_issue_two_calls(self, ctx, wizard_backend):
        wizard = AssessmentWizard(ctx, AssessmentCategory.RESOURCE_GOVERNANCE)
        wizard.set_name("Q1")
        wizard.toggle_type(AssessmentType.TAGGING)
        await reach_review(wizard)
        wizard.next()

        assert wizard.estimated_total_minutes == 8
        responses = await wizard.submit()

        bodies = wizard_backend.bodies("POST", "/assessments")
        assert len(responses) == 2
        assert sorted((b["type"], b["name"]) for b in bodies) == [
            (1, "Q1 - Tagging Compliance Only"),
            (2, "Q1 - Governance: Full Assessment"),
        ]
        assert all(b["useClientPreferences"] is False for b in bodies)

    @pytest.mark.asyncio
    async def test_selected_client_from_context(self, ctx, wizard_backend):
        wizard = AssessmentWizard(ctx.with_client(ACME_ID))
        await wizard.open()
        assert wizard.state.client_id == ACME_ID
        assert wizard.state.available_environments == (PROD_ID,)

    @pytest.mark.asyncio
    async def test_submit_failure_keeps_review(self, ctx, backend, acme, prod_environment):
        backend.add("GET", "/Client", [acme])
        backend.add("GET", f"/AzureEnvironment/client/{ACME_ID}", [prod_environment])
        backend.add("POST", "/assessments", {"message": "limit"}, status=402)
        wizard = AssessmentWizard(ctx)
        await reach_review(wizard)
        wizard.next()

        assert await wizard.submit() is None
        assert wizard.step == WizardStep.REVIEW
        assert wizard.error == LIMIT_REACHED_MESSAGE
        assert not wizard.is_submitting

    @pytest.mark.asyncio
    async def test_submit_outside_review_is_ignored(self, ctx, backend):
        wizard = AssessmentWizard(ctx)
        assert await wizard.submit() is None
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_review(self, ctx, backend, acme, prod_environment):
        def start(request):
            if json.loads(request.content)["type"] == AssessmentType.GOVERNANCE_FULL:
                return httpx.Response(500, json={"message": "Scanner unavailable"})
            return {"assessmentId": "a-1", "status": "Pending"}

        backend.add("GET", "/Client", [acme])
        backend.add("GET", f"/AzureEnvironment/client/{ACME_ID}", [prod_environment])
        backend.add("POST", "/assessments", start, status=201)
        created = []
        wizard = AssessmentWizard(ctx, on_created=created.append)
        wizard.set_name("Q1")
        wizard.toggle_type(AssessmentType.TAGGING)
        await reach_review(wizard)
        wizard.next()

        assert await wizard.submit() is None
        await asyncio.sleep(0.05)

        assert len(backend.requests("POST", "/assessments")) == 2
        assert created == []
        assert wizard.step == WizardStep.REVIEW
        assert wizard.error == SUBMIT_FAILED_MESSAGE
        assert wizard.state.name == "Q1"
        assert wizard.state.environment_id == PROD_ID
        assert [r for r in backend.calls if r.method == "DELETE"] == []

    @pytest.mark.asyncio
    async def test_result_after_close_is_dropped(self, ctx, backend, acme, prod_environment):
        backend.add("GET", "/Client", [acme])
        backend.add("GET", f"/AzureEnvironment/client/{ACME_ID}", [prod_environment])
        release = asyncio.Event()

        async def start(request):
            await release.wait()
            return AssessmentStartResponse(id="a-1")

        created = []
        wizard = AssessmentWizard(ctx, on_created=created.append)
        await reach_review(wizard)
        wizard.next()
        wizard.service = AsyncMock()
        wizard.service.start.side_effect = start

        pending = asyncio.create_task(wizard.submit())
        await asyncio.sleep(0)
        wizard.close()
        wizard.set_name("Next assessment")
        release.set()

        assert await pending is None
        assert created == []
        assert wizard.state.name == "Next assessment"
        assert not wizard.is_submitting

    @pytest.mark.asyncio
    async def test_reselecting_same_client_keeps_environment(self, ctx, wizard_backend):
        wizard = AssessmentWizard(ctx)
        await reach_review(wizard)
        wizard.set_use_client_preferences(True)

        await wizard.select_client(ACME_ID)

        assert wizard.state.environment_id == PROD_ID
        assert wizard.selector.environment_id == PROD_ID
        assert wizard.selector.can_use_client_preferences == wizard.state.can_use_client_preferences
        assert wizard.selector.use_client_preferences == wizard.state.use_client_preferences is True
        assert len(wizard_backend.requests("GET", f"/AzureEnvironment/client/{ACME_ID}")) == 1


class TestSubmitErrorMessage:
    """Tests for the three submit failure outcomes."""

    def test_limit_reached(self):
        assert submit_error_message(ApiError(402, {"message": "limit"})) == LIMIT_REACHED_MESSAGE

    def test_server_error_field(self):
        error = ApiError(400, {"error": "Environment is inactive"})
        assert submit_error_message(error) == "Environment is inactive"

    @pytest.mark.parametrize("error", [
        ApiError(403, {"message": "nope"}),
        ApiError(400, {"message": "Name is required"}),
        ApiError(500, None),
        NetworkError("down"),
    ])
    def test_everything_else_is_generic(self, error):
        assert submit_error_message(error) == SUBMIT_FAILED_MESSAGE


class TestClientEnvironmentSelector:
    """Tests for the client -> environment cascade."""

    @pytest.mark.asyncio
    async def test_cascade(self, ctx, backend, acme, prod_environment):
        backend.add("GET", "/Client", [acme])
        backend.add("GET", f"/AzureEnvironment/client/{ACME_ID}", [prod_environment])
        selector = ClientEnvironmentSelector(ctx)

        await selector.load_clients()
        assert selector.selected_client is None
        await selector.select_client(ACME_ID)
        selector.select_environment(PROD_ID)

        assert selector.selected_client.name == "Acme Corp"
        assert selector.selected_environment.name == "Prod"
        assert selector.set_use_client_preferences(True)

        await selector.select_client(None)
        assert selector.environment_id is None
        assert not selector.use_client_preferences
        assert not selector.set_use_client_preferences(True)

    @pytest.mark.asyncio
    async def test_foreign_environment_rejected(self, ctx):
        selector = ClientEnvironmentSelector(ctx)
        with pytest.raises(ValueError):
            selector.select_environment(PROD_ID)

    @pytest.mark.asyncio
    async def test_stale_response_discarded(self, ctx):
        release_first = asyncio.Event()

        async def list_for_client(client_id, active_only=True):
            if client_id == "first":
                await release_first.wait()
                return [AzureEnvironment(id="old", name="Old")]
            return [AzureEnvironment(id="new", name="New")]

        selector = ClientEnvironmentSelector(ctx)
        selector.environments_service = AsyncMock()
        selector.environments_service.list_for_client.side_effect = list_for_client

        first = asyncio.create_task(selector.select_client("first"))
        await asyncio.sleep(0)
        await selector.select_client("second")
        release_first.set()
        await first

        assert selector.client_id == "second"
        assert [env.id for env in selector.environments] == ["new"]
