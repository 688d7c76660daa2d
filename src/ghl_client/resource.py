from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from .models import GHLModel

if TYPE_CHECKING:
    from .client import GHLClient

T = TypeVar("T")


def to_payload(data: Any) -> dict[str, Any]:
    """Request models become camelCase dicts; plain mappings pass through minus None values."""
    if isinstance(data, GHLModel):
        return data.to_api()
    if isinstance(data, Mapping):
        return {k: v for k, v in data.items() if v is not None}
    raise TypeError(f"expected a request model or a mapping, got {type(data).__name__}")


class Resource:
    def __init__(self, client: "GHLClient"):
        self._client = client

    async def _audited(
        self,
        operation: str,
        resource_type: str,
        call: Callable[[], Awaitable[T]],
        *,
        resource_id: str | None = None,
        location_id: str | None = None,
        result_id: Callable[[T], str | None] | None = None,
    ) -> T:
        """Run ``call`` and record an audit event for its outcome; errors still propagate."""
        try:
            result = await call()
        except Exception as e:
            await self._client.audit(
                operation,
                resource_type,
                resource_id=resource_id,
                location_id=location_id,
                success=False,
                error=str(e),
            )
            raise
        if result_id is not None:
            resource_id = result_id(result) or resource_id
        await self._client.audit(
            operation, resource_type, resource_id=resource_id, location_id=location_id
        )
        return result
