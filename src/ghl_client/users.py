from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .errors import HttpClientError, ValidationError
from .models import User, UserResponse, UsersListResponse
from .resource import Resource


class UsersResource(Resource):
    """Location users (``client.users``)."""

    async def list(
        self, location_id: str | None = None, params: Mapping[str, Any] | None = None
    ) -> list[User]:
        """List users of a location.

        The API has served this from several paths over time, so each known
        variant is tried in order; the last error is raised if all fail.
        """
        loc = self._client.require_location_id(location_id)
        self._client.logger.debug(f"getting users location={loc}")
        endpoints = [
            f"/users/?locationId={loc}",
            f"/users?locationId={loc}",
            f"/locations/{loc}/users",
            f"/locations/{loc}/users/",
        ]
        last_err: Exception | None = None
        for endpoint in endpoints:
            try:
                resp = await self._client.request(
                    "GET", endpoint, query=params, response_model=UsersListResponse
                )
                return resp.users
            except (HttpClientError, ValidationError) as e:
                self._client.logger.warning(f"users endpoint {endpoint} failed ({e}); trying next")
                last_err = e
        raise last_err

    async def get(self, user_id: str) -> User:
        self._client.logger.debug(f"getting user id={user_id}")
        resp = await self._client.request("GET", f"/users/{user_id}", response_model=UserResponse)
        return resp.user

    async def find_by_email(self, location_id: str | None, email: str) -> User | None:
        wanted = email.casefold()
        for user in await self.list(location_id):
            if user.email.casefold() == wanted:
                return user
        return None

    async def get_by_role(self, location_id: str | None, role: str) -> list[User]:
        return [u for u in await self.list(location_id) if u.role == role]
