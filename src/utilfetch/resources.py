"""Managed resources built on the fetch engine.

Each resource mirrors the create/read/update/delete/import lifecycle of the
host tool: operations return a :class:`ResourceResponse` holding the new
state and the diagnostics to report.
"""

from __future__ import annotations

import secrets
import typing as t
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType

import aiohttp

from .errors import Diagnostic, Diagnostics
from .fetcher import Fetcher
from .retry import TRANSPORT_ERRORS

if t.TYPE_CHECKING:
    import asyncio
    from collections.abc import Mapping

    from .types import RequestSpec

DEFAULT_ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz-"
DEFAULT_ID_LENGTH = 21
MAX_ID_LENGTH = 64
MAX_ALPHABET_LENGTH = 255

S = t.TypeVar("S")


@dataclass
class ResourceResponse(t.Generic[S]):
    """New state of a resource and the diagnostics of the operation."""

    state: S | None = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def _not_implemented() -> ResourceResponse[S]:
    response: ResourceResponse[S] = ResourceResponse()
    response.diagnostics.append(
        Diagnostic.error("NotImplemented", "Not Implemented.", "Not implemented."),
    )
    return response


def _keepers_changed(old: Mapping[str, str] | None, new: Mapping[str, str] | None) -> bool:
    # Only configured keepers force replacement
    return new is not None and dict(old or {}) != dict(new)


@dataclass(frozen=True)
class HttpResourceState:
    """Persisted state of an ``http`` resource.

    ``body`` is the deprecated alias of ``response_body``.
    """

    id: str
    request: RequestSpec
    status_code: int
    response_headers: Mapping[str, str]
    response_body: str
    response_body_base64: str
    keepers: Mapping[str, str] | None = None

    @property
    def body(self) -> str:
        return self.response_body


class HttpResource:
    """Fetches a URL and keeps the response in state."""

    type_name = "http"

    def __init__(self, fetcher: Fetcher | None = None) -> None:
        self.fetcher = fetcher or Fetcher()

    async def _read(
        self,
        request: RequestSpec,
        keepers: Mapping[str, str] | None,
        cancel: asyncio.Event | None,
    ) -> ResourceResponse[HttpResourceState]:
        outcome = await self.fetcher.fetch(request, cancel=cancel)
        response: ResourceResponse[HttpResourceState] = ResourceResponse(
            diagnostics=outcome.diagnostics,
        )
        if outcome.result is None:
            return response
        result = outcome.result
        response.state = HttpResourceState(
            id=request.url,
            request=request,
            status_code=result.status_code,
            response_headers=MappingProxyType(dict(result.response_headers)),
            response_body=result.response_body,
            response_body_base64=result.response_body_base64,
            keepers=MappingProxyType(dict(keepers)) if keepers is not None else None,
        )
        return response

    async def create(
        self,
        request: RequestSpec,
        keepers: Mapping[str, str] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ResourceResponse[HttpResourceState]:
        return await self._read(request, keepers, cancel)

    def read(self, state: HttpResourceState) -> ResourceResponse[HttpResourceState]:
        return ResourceResponse(state)

    async def update(
        self,
        state: HttpResourceState,
        request: RequestSpec | None = None,
        keepers: Mapping[str, str] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ResourceResponse[HttpResourceState]:
        """Fetch again, with ``request`` if given, else with the stored one.

        ``keepers`` are the planned keepers and replace the stored ones, so
        passing None drops them from state.
        """
        return await self._read(request or state.request, keepers, cancel)

    def delete(self, state: HttpResourceState) -> ResourceResponse[HttpResourceState]:  # noqa: ARG002
        return ResourceResponse()

    def import_state(self, resource_id: str) -> ResourceResponse[HttpResourceState]:  # noqa: ARG002
        return _not_implemented()

    def requires_replace(
        self,
        state: HttpResourceState,
        request: RequestSpec,
        keepers: Mapping[str, str] | None = None,
    ) -> bool:
        return state.request.url != request.url or _keepers_changed(state.keepers, keepers)


@dataclass(frozen=True)
class FileState:
    """Persisted state of a ``file`` resource."""

    id: str
    url: str
    content: str
    keepers: Mapping[str, str] | None = None


class FileResource:
    """Downloads a file once, with a single GET and no retries."""

    type_name = "file"

    def __init__(self, *, trust_env: bool = True) -> None:
        self.trust_env = trust_env

    async def create(
        self,
        url: str,
        keepers: Mapping[str, str] | None = None,
    ) -> ResourceResponse[FileState]:
        response: ResourceResponse[FileState] = ResourceResponse()
        async with aiohttp.ClientSession(trust_env=self.trust_env) as session:
            try:
                async with session.get(url) as http_response:
                    try:
                        content = await http_response.read()
                    except TRANSPORT_ERRORS as e:
                        response.diagnostics.append(
                            Diagnostic.error("ResponseReadError", "Failed to read response body", str(e)),
                        )
                        return response
            except (*TRANSPORT_ERRORS, ValueError) as e:
                response.diagnostics.append(
                    Diagnostic.error("RequestError", "Failed to fetch URL", str(e)),
                )
                return response

        response.state = FileState(
            id=str(uuid.uuid4()),
            url=url,
            content=content.decode("utf-8", errors="replace"),
            keepers=MappingProxyType(dict(keepers)) if keepers is not None else None,
        )
        return response

    def read(self, state: FileState) -> ResourceResponse[FileState]:
        return ResourceResponse(state)

    def update(self, state: FileState) -> ResourceResponse[FileState]:
        return ResourceResponse(state)

    def delete(self, state: FileState) -> ResourceResponse[FileState]:  # noqa: ARG002
        return ResourceResponse()

    def import_state(self, resource_id: str) -> ResourceResponse[FileState]:  # noqa: ARG002
        return _not_implemented()

    def requires_replace(
        self,
        state: FileState,
        url: str,
        keepers: Mapping[str, str] | None = None,
    ) -> bool:
        return state.url != url or _keepers_changed(state.keepers, keepers)


@dataclass(frozen=True)
class NanoIdState:
    """Persisted state of a ``nanoid`` resource."""

    id: str
    alphabet: str = DEFAULT_ID_ALPHABET
    length: int = DEFAULT_ID_LENGTH
    keepers: Mapping[str, str] | None = None


def generate_id(alphabet: str = DEFAULT_ID_ALPHABET, length: int = DEFAULT_ID_LENGTH) -> str:
    """Generate a random identifier from ``alphabet``.

    Raises:
        ValueError: If the alphabet or the length is out of range.

    """
    if not 1 <= len(alphabet) <= MAX_ALPHABET_LENGTH:
        msg = f"alphabet must be between 1 and {MAX_ALPHABET_LENGTH} characters long"
        raise ValueError(msg)
    if not 1 <= length <= MAX_ID_LENGTH:
        msg = f"length must be between 1 and {MAX_ID_LENGTH}"
        raise ValueError(msg)
    return "".join(secrets.choice(alphabet) for _ in range(length))


class NanoIdResource:
    """Generates random strings meant as unique identifiers."""

    type_name = "nanoid"

    def create(
        self,
        alphabet: str | None = None,
        length: int | None = None,
        keepers: Mapping[str, str] | None = None,
    ) -> ResourceResponse[NanoIdState]:
        alphabet = DEFAULT_ID_ALPHABET if alphabet is None else alphabet
        length = DEFAULT_ID_LENGTH if length is None else length
        response: ResourceResponse[NanoIdState] = ResourceResponse()
        try:
            resource_id = generate_id(alphabet, length)
        except ValueError as e:
            response.diagnostics.append(
                Diagnostic.error("GenerateError", "Failed to generate id", f"Failed to generate id: {e}."),
            )
            return response
        response.state = NanoIdState(
            id=resource_id,
            alphabet=alphabet,
            length=length,
            keepers=MappingProxyType(dict(keepers)) if keepers is not None else None,
        )
        return response

    def read(self, state: NanoIdState) -> ResourceResponse[NanoIdState]:
        return ResourceResponse(state)

    def update(self, state: NanoIdState) -> ResourceResponse[NanoIdState]:
        return ResourceResponse(state)

    def delete(self, state: NanoIdState) -> ResourceResponse[NanoIdState]:  # noqa: ARG002
        return ResourceResponse()

    def import_state(self, resource_id: str) -> ResourceResponse[NanoIdState]:
        """Adopt an existing id, assuming the default alphabet."""
        response: ResourceResponse[NanoIdState] = ResourceResponse()
        if len(resource_id) > MAX_ID_LENGTH:
            response.diagnostics.append(
                Diagnostic.error(
                    "InvalidId",
                    "Invalid id",
                    f"The id must be at most {MAX_ID_LENGTH} characters long.",
                ),
            )
            return response
        response.state = NanoIdState(id=resource_id, length=len(resource_id))
        return response

    def requires_replace(
        self,
        state: NanoIdState,
        alphabet: str | None = None,
        length: int | None = None,
        keepers: Mapping[str, str] | None = None,
    ) -> bool:
        alphabet = DEFAULT_ID_ALPHABET if alphabet is None else alphabet
        length = DEFAULT_ID_LENGTH if length is None else length
        return (
            state.alphabet != alphabet
            or state.length != length
            or _keepers_changed(state.keepers, keepers)
        )
