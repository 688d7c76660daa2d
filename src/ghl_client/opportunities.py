from collections.abc import Mapping
from typing import Any, Union

from .cache import PipelineCache
from .models import (
    CreateOpportunityRequest,
    OpportunitiesListResponse,
    Opportunity,
    OpportunityResponse,
    Pipeline,
    PipelinesResponse,
    SearchOpportunitiesRequest,
    StageMatch,
    UpdateOpportunityRequest,
    UpsertOpportunityRequest,
)
from .resource import Resource, to_payload


class OpportunitiesResource(Resource):
    """Opportunities plus cached pipeline lookups (``client.opportunities``)."""

    def __init__(self, client):
        super().__init__(client)
        self.pipeline_cache = PipelineCache()

    async def get(self, opportunity_id: str) -> Opportunity:
        self._client.logger.debug(f"getting opportunity id={opportunity_id}")
        resp = await self._client.request(
            "GET", f"/opportunities/{opportunity_id}", response_model=OpportunityResponse
        )
        return resp.opportunity

    async def create(
        self, data: Union[CreateOpportunityRequest, Mapping[str, Any]]
    ) -> Opportunity:
        payload = to_payload(data)
        self._client.logger.debug(f"creating opportunity location={payload.get('locationId')}")

        async def _call():
            resp = await self._client.request(
                "POST", "/opportunities/", body=payload, response_model=OpportunityResponse
            )
            return resp.opportunity

        return await self._audited(
            "create",
            "opportunity",
            _call,
            location_id=payload.get("locationId"),
            result_id=lambda o: o.id,
        )

    async def update(
        self, opportunity_id: str, data: Union[UpdateOpportunityRequest, Mapping[str, Any]]
    ) -> Opportunity:
        payload = to_payload(data)
        self._client.logger.debug(f"updating opportunity id={opportunity_id}")

        async def _call():
            resp = await self._client.request(
                "PUT",
                f"/opportunities/{opportunity_id}",
                body=payload,
                response_model=OpportunityResponse,
            )
            return resp.opportunity

        return await self._audited("update", "opportunity", _call, resource_id=opportunity_id)

    async def delete(self, opportunity_id: str) -> None:
        self._client.logger.debug(f"deleting opportunity id={opportunity_id}")

        async def _call():
            await self._client.request("DELETE", f"/opportunities/{opportunity_id}")

        await self._audited("delete", "opportunity", _call, resource_id=opportunity_id)

    async def upsert(
        self, data: Union[UpsertOpportunityRequest, Mapping[str, Any]]
    ) -> Opportunity:
        payload = to_payload(data)
        self._client.logger.debug(f"upserting opportunity location={payload.get('locationId')}")

        async def _call():
            resp = await self._client.request(
                "POST", "/opportunities/upsert", body=payload, response_model=OpportunityResponse
            )
            return resp.opportunity

        return await self._audited(
            "upsert",
            "opportunity",
            _call,
            resource_id=payload.get("id"),
            location_id=payload.get("locationId"),
            result_id=lambda o: o.id,
        )

    async def search(
        self, params: Union[SearchOpportunitiesRequest, Mapping[str, Any]]
    ) -> list[Opportunity]:
        query = to_payload(params)
        self._client.logger.debug(f"searching opportunities location={query.get('locationId')}")
        resp = await self._client.request(
            "GET", "/opportunities/search", query=query, response_model=OpportunitiesListResponse
        )
        return resp.opportunities

    async def get_pipelines(self, location_id: str | None = None) -> list[Pipeline]:
        loc = self._client.require_location_id(location_id)
        self._client.logger.debug(f"getting pipelines location={loc}")
        resp = await self._client.request(
            "GET",
            "/opportunities/pipelines",
            query={"locationId": loc},
            response_model=PipelinesResponse,
        )
        return resp.pipelines

    async def load_pipelines_cache(self, location_id: str | None = None) -> dict[str, Pipeline]:
        """Pipelines for a location keyed by id, served from cache for up to an hour."""
        loc = self._client.require_location_id(location_id)
        return await self.pipeline_cache.load(loc, self.get_pipelines)

    async def find_stage_by_name(
        self, location_id: str | None, pipeline_id: str, stage_name: str
    ) -> StageMatch | None:
        """Case-insensitive stage lookup inside one pipeline; None when nothing matches."""
        loc = self._client.require_location_id(location_id)
        return await self.pipeline_cache.find_stage_by_name(
            loc, pipeline_id, stage_name, self.get_pipelines
        )

    def clear_pipeline_cache(self, location_id: str | None = None) -> None:
        self.pipeline_cache.clear(location_id)

    async def exists_for_contact(
        self, location_id: str, contact_id: str, pipeline_id: str
    ) -> Opportunity | None:
        """First opportunity of ``contact_id`` in ``pipeline_id``, if any."""
        found = await self.search(
            {"locationId": location_id, "contactId": contact_id, "pipelineId": pipeline_id}
        )
        return found[0] if found else None
