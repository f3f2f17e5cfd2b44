"""Create-client dialog."""

import logging
import re
from datetime import date
from typing import Callable

from compass_portal.api.services.client_service import ClientService
from compass_portal.schemas.client import Client, ClientCreate
from compass_portal.ui.forms import FormState

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")

CREATE_FAILED_MESSAGE = "Failed to create client. Please try again."
CLIENT_ERROR_OVERRIDES = {
    409: "A client with this name already exists in your organization.",
    403: "You do not have permission to create clients.",
}


def _parse_date(value: str) -> date | None:
    value = value.strip()
    if not value:
        return None
    return date.fromisoformat(value[:10])


class AddClientForm(FormState):
    """Client creation form.

    Example:
        form = AddClientForm(ctx.services.clients, on_created=refresh)
        form.set_field("name", "Acme Corp")
        client = await form.submit()
    """

    fields = (
        "name",
        "description",
        "industry",
        "contact_name",
        "contact_email",
        "contact_phone",
        "address",
        "city",
        "state",
        "country",
        "postal_code",
        "time_zone",
        "contract_start_date",
        "contract_end_date",
    )

    def __init__(self, service: ClientService, on_created: Callable[[Client], None] | None = None, **initial: str):
        self.service = service
        self.on_created = on_created
        super().__init__(**initial)

    def validate(self) -> dict[str, str]:
        errors = {}

        if not self.values["name"].strip():
            errors["name"] = "Client name is required"

        email = self.values["contact_email"].strip()
        if email and not EMAIL_PATTERN.search(email):
            errors["contact_email"] = "Please enter a valid email address"

        dates = {}
        for name in ("contract_start_date", "contract_end_date"):
            try:
                dates[name] = _parse_date(self.values[name])
            except ValueError:
                errors[name] = "Please enter a valid date"
                dates[name] = None

        start, end = dates["contract_start_date"], dates["contract_end_date"]
        if start and end and end <= start:
            errors["contract_end_date"] = "End date must be after start date"

        return errors

    def to_request(self) -> ClientCreate:
        return ClientCreate(
            name=self.values["name"].strip(),
            **{name: self.clean(name) for name in self.fields if name != "name"},
        )

    async def submit(self) -> Client | None:
        if not self.is_valid():
            return None

        request = self.to_request()
        client = await self.run(
            lambda: self.service.create_client(request),
            CREATE_FAILED_MESSAGE,
            overrides=CLIENT_ERROR_OVERRIDES,
        )
        if client is None:
            return None

        if self.on_created:
            self.on_created(client)
        self.reset()
        return client
