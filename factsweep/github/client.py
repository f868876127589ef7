"""GitHub REST client used to resolve repositories and read quota."""

from __future__ import annotations

import dataclasses
import typing as typ

import httpx
import msgspec

from factsweep.logging import get_logger, log_debug

from .errors import GitHubAPIError, GitHubConfigError, GitHubResponseShapeError

if typ.TYPE_CHECKING:
    from factsweep.options import JudgeOptions

logger = get_logger(__name__)

_HTTP_ERROR_STATUS_THRESHOLD = 400
_PAGE_SIZE = 100


class RepositoryPayload(msgspec.Struct, kw_only=True, frozen=True):
    """Subset of the GitHub repository resource the engine relies on."""

    id: int
    full_name: str
    archived: bool = False


class _RateWindow(msgspec.Struct, kw_only=True, frozen=True):
    limit: int
    remaining: int


class RateLimitPayload(msgspec.Struct, kw_only=True, frozen=True):
    """Body of ``GET /rate_limit``."""

    rate: _RateWindow


class GitHubClient(typ.Protocol):
    """Operations on GitHub the iteration engine needs."""

    async def rate_limit_remaining(self) -> int:
        """Return how many core API requests are left in the window."""
        ...

    async def repository(self, name: str) -> RepositoryPayload:
        """Return the repository called ``owner/name``."""
        ...

    async def list_repositories(self, owner: str) -> list[RepositoryPayload]:
        """Return every repository visible under ``owner``."""
        ...

    async def aclose(self) -> None:
        """Release any connections held by the client."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubRestConfig:
    """Configuration for the GitHub REST API client."""

    token: str
    endpoint: str = "https://api.github.com"
    timeout_s: float = 20.0
    user_agent: str = "factsweep/0.1"

    @classmethod
    def from_options(cls, options: JudgeOptions) -> GitHubRestConfig:
        """Build configuration from run options."""
        token = (options.github_token or "").strip()
        if not token:
            raise GitHubConfigError.missing_token()
        return cls(token=token, endpoint=options.github_endpoint.rstrip("/"))


class GitHubRestClient:
    """GitHub REST implementation of :class:`GitHubClient`."""

    def __init__(
        self,
        config: GitHubRestConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration.

        A client built here (no ``http_client`` given) is owned and closed by
        :meth:`aclose`; ``transport`` lets tests serve it offline.
        """
        if not config.token.strip():
            raise GitHubConfigError.empty_token()

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            transport=transport,
            headers={
                "Authorization": f"Bearer {config.token}",
                "User-Agent": config.user_agent,
                "Accept": "application/vnd.github+json",
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def _get(
        self, url: str, params: dict[str, typ.Any] | None = None
    ) -> httpx.Response:
        response = await self._client.get(url, params=params)
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise GitHubAPIError.http_error(response.status_code, response.url.path)
        return response

    async def rate_limit_remaining(self) -> int:
        """Return how many core API requests are left in the window."""
        path = f"{self._config.endpoint}/rate_limit"
        response = await self._get(path)
        payload = _decode(response, RateLimitPayload)
        return payload.rate.remaining

    async def repository(self, name: str) -> RepositoryPayload:
        """Return the repository called ``owner/name``."""
        response = await self._get(f"{self._config.endpoint}/repos/{name}")
        payload = _decode(response, RepositoryPayload)
        log_debug(logger, "GitHub repository %s has an ID: #%d", name, payload.id)
        return payload

    async def list_repositories(self, owner: str) -> list[RepositoryPayload]:
        """Return every repository of ``owner``, following ``Link`` pagination."""
        repositories: list[RepositoryPayload] = []
        url: str | None = f"{self._config.endpoint}/users/{owner}/repos"
        params: dict[str, typ.Any] | None = {"per_page": _PAGE_SIZE}
        while url is not None:
            response = await self._get(url, params)
            repositories.extend(_decode(response, list[RepositoryPayload]))
            url = response.links.get("next", {}).get("url")
            params = None
        return repositories


def _decode[T](response: httpx.Response, kind: type[T]) -> T:
    try:
        return msgspec.json.decode(response.content, type=kind)
    except msgspec.DecodeError as exc:
        raise GitHubResponseShapeError.invalid(response.url.path, str(exc)) from exc
