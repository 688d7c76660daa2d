from collections.abc import Mapping
from typing import Any, Union

from .errors import HttpClientError, ValidationError
from .models import (
    Contact,
    ContactNote,
    ContactResponse,
    ContactsListResponse,
    CreateContactNoteRequest,
    CreateContactRequest,
    NoteResponse,
    NotesResponse,
    SearchContactsRequest,
    UpdateContactRequest,
    UpsertContactRequest,
)
from .resource import Resource, to_payload


class ContactsResource(Resource):
    """Contact CRUD, search and notes (``client.contacts``)."""

    async def get(self, contact_id: str) -> Contact:
        self._client.logger.debug(f"getting contact id={contact_id}")
        resp = await self._client.request(
            "GET", f"/contacts/{contact_id}", response_model=ContactResponse
        )
        return resp.contact

    async def create(self, data: Union[CreateContactRequest, Mapping[str, Any]]) -> Contact:
        payload = to_payload(data)
        self._client.logger.debug(f"creating contact location={payload.get('locationId')}")

        async def _call():
            resp = await self._client.request(
                "POST", "/contacts/", body=payload, response_model=ContactResponse
            )
            return resp.contact

        return await self._audited(
            "create",
            "contact",
            _call,
            location_id=payload.get("locationId"),
            result_id=lambda c: c.id,
        )

    async def update(
        self, contact_id: str, data: Union[UpdateContactRequest, Mapping[str, Any]]
    ) -> Contact:
        payload = to_payload(data)
        self._client.logger.debug(f"updating contact id={contact_id}")

        async def _call():
            resp = await self._client.request(
                "PUT", f"/contacts/{contact_id}", body=payload, response_model=ContactResponse
            )
            return resp.contact

        return await self._audited(
            "update",
            "contact",
            _call,
            resource_id=contact_id,
            location_id=payload.get("locationId"),
        )

    async def delete(self, contact_id: str) -> None:
        self._client.logger.debug(f"deleting contact id={contact_id}")

        async def _call():
            await self._client.request("DELETE", f"/contacts/{contact_id}")

        await self._audited("delete", "contact", _call, resource_id=contact_id)

    async def search(
        self, params: Union[SearchContactsRequest, Mapping[str, Any]]
    ) -> list[Contact]:
        """Search contacts; falls back to ``GET /contacts/`` if the search endpoint fails."""
        query = to_payload(params)
        self._client.logger.debug(f"searching contacts location={query.get('locationId')}")
        try:
            resp = await self._client.request(
                "POST", "/contacts/search", body=query, response_model=ContactsListResponse
            )
        except (HttpClientError, ValidationError) as e:
            self._client.logger.warning(f"contact search POST failed ({e}); trying GET fallback")
            resp = await self._client.request(
                "GET", "/contacts/", query=query, response_model=ContactsListResponse
            )
        return resp.contacts

    async def search_by_phone(self, location_id: str, phone: str) -> list[Contact]:
        return await self.search({"locationId": location_id, "phone": phone})

    async def search_by_email(self, location_id: str, email: str) -> list[Contact]:
        return await self.search({"locationId": location_id, "email": email})

    async def upsert(self, data: Union[UpsertContactRequest, Mapping[str, Any]]) -> Contact:
        """Create or update a contact; the API matches existing records by email/phone."""
        payload = to_payload(data)
        self._client.logger.debug(f"upserting contact location={payload.get('locationId')}")

        async def _call():
            resp = await self._client.request(
                "POST", "/contacts/upsert", body=payload, response_model=ContactResponse
            )
            return resp.contact

        return await self._audited(
            "upsert",
            "contact",
            _call,
            location_id=payload.get("locationId"),
            result_id=lambda c: c.id,
        )

    async def add_note(
        self, data: Union[CreateContactNoteRequest, Mapping[str, Any]]
    ) -> ContactNote:
        payload = to_payload(data)
        contact_id = payload.get("contactId")
        if not contact_id:
            raise ValueError("contactId is required to add a note")
        body = {"body": payload.get("body"), "userId": payload.get("userId")}
        self._client.logger.debug(f"adding note to contact id={contact_id}")

        async def _call():
            resp = await self._client.request(
                "POST",
                f"/contacts/{contact_id}/notes",
                body={k: v for k, v in body.items() if v is not None},
                response_model=NoteResponse,
            )
            return resp.note

        return await self._audited(
            "create", "note", _call, resource_id=contact_id, result_id=lambda n: n.id
        )

    async def get_notes(self, contact_id: str) -> list[ContactNote]:
        self._client.logger.debug(f"getting notes for contact id={contact_id}")
        resp = await self._client.request(
            "GET", f"/contacts/{contact_id}/notes", response_model=NotesResponse
        )
        return resp.notes
