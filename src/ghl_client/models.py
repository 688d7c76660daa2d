"""Typed views of GoHighLevel API payloads.

Models accept the API's camelCase keys and expose snake_case attributes.
Unknown keys are kept (``extra="allow"``) since the API adds fields freely.
"""

from typing import Annotated, Any, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

GHLId = Annotated[str, Field(min_length=1)]
CustomFieldValue = Union[str, int, float, bool, None]
CustomFields = Union[dict[str, CustomFieldValue], list[dict[str, Any]]]


class GHLModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_api(self) -> dict[str, Any]:
        """Serialize for a request body or query string (camelCase, unset fields dropped)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PaginationMeta(GHLModel):
    total: int | None = None
    current_page: int | None = None
    next_page: int | None = None
    prev_page: int | None = None
    start_after: Union[str, int, None] = None
    start_after_id: str | None = None


class Tag(GHLModel):
    id: str | None = None
    name: str | None = None
    label: str | None = None


# ---------- contacts ----------


class ContactSource(GHLModel):
    type: str | None = None
    id: str | None = None
    name: str | None = None
    url: str | None = None


class AttributionSource(GHLModel):
    url: str | None = None
    campaign: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_content: str | None = None
    referrer: str | None = None
    campaign_id: str | None = None
    fbclid: str | None = None
    gclid: str | None = None
    medium: str | None = None
    medium_id: str | None = None
    user_agent: str | None = None
    ip: str | None = None


class SocialMediaLinks(GHLModel):
    facebook: str | None = None
    twitter: str | None = None
    linkedin: str | None = None
    instagram: str | None = None
    tiktok: str | None = None
    youtube: str | None = None


class Contact(GHLModel):
    id: GHLId
    location_id: GHLId
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company_name: str | None = None
    website: str | None = None
    address1: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    date_added: str | None = None
    date_updated: str | None = None
    date_of_birth: str | None = None
    tags: list[Union[str, Tag]] | None = None
    source: Union[ContactSource, str, None] = None
    attribution_source: AttributionSource | None = None
    custom_fields: CustomFields | None = None
    custom_field: CustomFields | None = None
    assigned_to: str | None = None
    social_media_links: SocialMediaLinks | None = None
    type: str | None = None
    contact_type: str | None = None
    timezone: str | None = None
    dnd: bool | None = None
    dnd_settings: dict[str, Any] | None = None
    business_id: str | None = None
    followers: list[str] | None = None


class CreateContactRequest(GHLModel):
    location_id: GHLId
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address1: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    website: str | None = None
    timezone: str | None = None
    dnd: bool | None = None
    tags: list[str] | None = None
    custom_fields: CustomFields | None = None
    source: str | None = None
    company_name: str | None = None
    assigned_to: str | None = None


class UpdateContactRequest(GHLModel):
    location_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address1: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    website: str | None = None
    timezone: str | None = None
    dnd: bool | None = None
    tags: list[str] | None = None
    custom_fields: CustomFields | None = None
    source: str | None = None
    company_name: str | None = None
    assigned_to: str | None = None


class UpsertContactRequest(CreateContactRequest):
    """Same shape as a create; the API matches on email/phone."""


class SearchContactsRequest(GHLModel):
    location_id: GHLId
    query: str | None = None
    email: str | None = None
    phone: str | None = None
    limit: Annotated[int, Field(ge=1, le=100)] | None = None
    offset: Annotated[int, Field(ge=0)] | None = None
    start_after: str | None = None
    start_after_id: str | None = None


class ContactNote(GHLModel):
    id: str | None = None
    contact_id: str | None = None
    user_id: str | None = None
    body: str
    date_added: str | None = None


class CreateContactNoteRequest(GHLModel):
    contact_id: GHLId
    body: str
    user_id: str | None = None


class ContactResponse(GHLModel):
    contact: Contact


class ContactsListResponse(GHLModel):
    contacts: list[Contact]
    meta: PaginationMeta | None = None


class NoteResponse(GHLModel):
    note: ContactNote


class NotesResponse(GHLModel):
    notes: list[ContactNote]


# ---------- opportunities / pipelines ----------


class PipelineStage(GHLModel):
    id: GHLId
    name: str
    position: float | None = None
    pipeline_id: str | None = None


class Pipeline(GHLModel):
    id: GHLId
    name: str
    location_id: str | None = None
    stages: list[PipelineStage] = Field(default_factory=list)
    show_in_funnel: bool | None = None
    show_in_pie_chart: bool | None = None


class OpportunityContact(GHLModel):
    id: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company_name: str | None = None


class Opportunity(GHLModel):
    id: GHLId
    location_id: GHLId
    name: str
    pipeline_id: GHLId
    pipeline_stage_id: GHLId
    status: str
    contact_id: str | None = None
    contact: OpportunityContact | None = None
    monetary_value: float | None = None
    monetary_value_currency: str | None = None
    assigned_to: str | None = None
    date_added: str | None = None
    date_updated: str | None = None
    last_status_change_at: str | None = None
    source: str | None = None
    custom_fields: CustomFields | None = None
    lead_value: float | None = None
    followers: list[str] | None = None


class CreateOpportunityRequest(GHLModel):
    location_id: GHLId
    name: str
    pipeline_id: GHLId
    pipeline_stage_id: GHLId
    contact_id: str | None = None
    status: str | None = None
    monetary_value: float | None = None
    monetary_value_currency: str | None = None
    assigned_to: str | None = None
    source: str | None = None
    custom_fields: CustomFields | None = None


class UpdateOpportunityRequest(GHLModel):
    name: str | None = None
    pipeline_id: str | None = None
    pipeline_stage_id: str | None = None
    contact_id: str | None = None
    status: str | None = None
    monetary_value: float | None = None
    monetary_value_currency: str | None = None
    assigned_to: str | None = None
    source: str | None = None
    custom_fields: CustomFields | None = None


class UpsertOpportunityRequest(CreateOpportunityRequest):
    id: str | None = None


class SearchOpportunitiesRequest(GHLModel):
    location_id: GHLId
    pipeline_id: str | None = None
    pipeline_stage_id: str | None = None
    contact_id: str | None = None
    status: str | None = None
    assigned_to: str | None = None
    query: str | None = None
    limit: Annotated[int, Field(ge=1, le=100)] | None = None
    offset: Annotated[int, Field(ge=0)] | None = None
    start_after: str | None = None
    start_after_id: str | None = None


class OpportunityResponse(GHLModel):
    opportunity: Opportunity


class OpportunitiesListResponse(GHLModel):
    opportunities: list[Opportunity]
    meta: PaginationMeta | None = None


class PipelinesResponse(GHLModel):
    pipelines: list[Pipeline]


class StageMatch(GHLModel):
    id: str
    name: str


# ---------- users ----------


class UserPermissions(GHLModel):
    campaigns_enabled: bool | None = None
    contacts_enabled: bool | None = None
    workflows_enabled: bool | None = None
    opportunities_enabled: bool | None = None
    conversations_enabled: bool | None = None
    appointments_enabled: bool | None = None
    settings_enabled: bool | None = None
    tags_enabled: bool | None = None
    marketing_enabled: bool | None = None
    assigned_data_only: bool | None = None


class User(GHLModel):
    id: GHLId
    name: str
    email: str
    location_id: str | None = None
    company_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    role: str | None = None
    type: str | None = None
    permissions: UserPermissions | None = None
    deleted: bool | None = None
    date_added: str | None = None


class UserResponse(GHLModel):
    user: User


class UsersListResponse(GHLModel):
    users: list[User]


# ---------- oauth ----------


class TokenResponse(BaseModel):
    """Token endpoint payload (snake_case on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    access_token: str
    expires_in: int
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    user_type: str | None = Field(default=None, alias="userType")
    location_id: str | None = Field(default=None, alias="locationId")
    company_id: str | None = Field(default=None, alias="companyId")
    user_id: str | None = Field(default=None, alias="userId")
