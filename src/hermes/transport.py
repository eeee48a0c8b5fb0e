"""Single-request HTTP transport to an instance's private back-end."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx
import msgspec

from .context import ConnectionContext
from .http import JSON_MEDIA_TYPE, Method, is_html, is_json, media_type, normalize_method
from .observability import Observability
from .results import CallError, CallResult, Empty, Err, ErrorKind, Ok
from .serialization import error_envelope, is_scalar, json_decode, json_encode

logger = logging.getLogger(__name__)

PASSTHROUGH_OPTIONS = frozenset({"params", "timeout", "cookies", "follow_redirects"})
MAX_LOGGED_BODY = 512


class TransportClient:
    """Issue exactly one authenticated request and classify the response.

    :meth:`call` never raises. Invalid requests and network, HTTP or decoding
    failures are logged with the instance identity and returned as :class:`Err`.
    """

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        observability: Observability | None = None,
    ) -> None:
        self._transport = transport
        self._observability = observability or Observability()

    async def call(
        self,
        context: ConnectionContext,
        uri: str,
        payload: Any = None,
        options: Mapping[str, Any] | None = None,
        method: str | Method = Method.POST,
    ) -> CallResult:
        ref = context.ref
        try:
            verb = normalize_method(method)
            url = context.url_for(uri)
            headers, request_kwargs = _request_options(context, options)
        except (TypeError, ValueError) as exc:
            logger.error(
                "Invalid request %r %r [cluster=%s instance=%s]: %s",
                method,
                uri,
                ref.cluster_id,
                ref.instance_id,
                exc,
            )
            return Err.of(ErrorKind.TRANSPORT, f"invalid request: {exc}")

        observation = self._observability.on_call_start(ref, verb, url)
        try:
            content = _encode_payload(payload, headers)
        except (msgspec.EncodeError, TypeError) as exc:
            logger.error(
                "Unable to encode payload for %s %s [cluster=%s instance=%s]: %s",
                verb,
                url,
                ref.cluster_id,
                ref.instance_id,
                exc,
            )
            error = CallError(kind=ErrorKind.TRANSPORT, message=f"payload could not be encoded: {exc}")
            self._observability.on_call_error(observation, error, exc)
            return Err(error)

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.request(verb, url, content=content, headers=headers, **request_kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error(
                "Transport failure on %s %s [cluster=%s instance=%s]: %s",
                verb,
                url,
                ref.cluster_id,
                ref.instance_id,
                exc,
            )
            error = CallError(kind=ErrorKind.TRANSPORT, message=str(exc) or type(exc).__name__)
            self._observability.on_call_error(observation, error, exc)
            return Err(error)
        except Exception as exc:
            logger.exception(
                "Unexpected failure on %s %s [cluster=%s instance=%s]",
                verb,
                url,
                ref.cluster_id,
                ref.instance_id,
            )
            error = CallError(kind=ErrorKind.TRANSPORT, message=str(exc) or type(exc).__name__)
            self._observability.on_call_error(observation, error, exc)
            return Err(error)

        result = classify_response(response)
        if isinstance(result, Err):
            _log_failure(result.error, response, verb, url, context)
            self._observability.on_call_error(observation, result.error)
        else:
            self._observability.on_call_success(observation, response.status_code)
        return result


def classify_response(response: httpx.Response) -> CallResult:
    """Map ``response`` onto :class:`Ok`, :class:`Empty` or :class:`Err`.

    Only a ``200`` that is not ``text/html`` counts as success; instances
    answer with an HTML page when a request is routed to the web front-end
    instead of the API.
    """

    status = response.status_code
    content_type = response.headers.get("content-type")
    if status == httpx.codes.OK and not is_html(content_type):
        body = response.content
        if not body.strip():
            return Empty(status=status)
        if is_json(content_type) or not media_type(content_type):
            try:
                return Ok(json_decode(body), status=status)
            except msgspec.DecodeError:
                return Err.of(ErrorKind.APPLICATION, "malformed response body", status=status)
        return Ok(response.text, status=status)

    text = response.text
    try:
        envelope = error_envelope(json_decode(text)) if text.strip() else None
    except msgspec.DecodeError:
        envelope = None
    if envelope is not None:
        code, message = envelope
        return Err.of(ErrorKind.APPLICATION, message or "", status=status, code=code)
    if status == httpx.codes.OK:
        return Err.of(ErrorKind.APPLICATION, "unexpected HTML response", status=status)
    return Err.of(ErrorKind.APPLICATION, _truncate(text), status=status)


def _request_options(
    context: ConnectionContext, options: Mapping[str, Any] | None
) -> tuple[dict[str, str], dict[str, Any]]:
    merged = {**context.options, **(options or {})}
    headers = dict(merged.pop("headers", None) or {})
    headers[context.header_name] = context.token
    request_kwargs: dict[str, Any] = {}
    for key, value in merged.items():
        if key in PASSTHROUGH_OPTIONS:
            request_kwargs[key] = value
        else:
            logger.debug("Ignoring unsupported transport option %r", key)
    return headers, request_kwargs


def _encode_payload(payload: Any, headers: dict[str, str]) -> bytes | None:
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload.encode("utf-8")
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if is_scalar(payload):
        return str(payload).encode("utf-8")
    encoded = json_encode(payload)
    for key in list(headers):
        if key.lower() == "content-type":
            del headers[key]
    headers["Content-Type"] = JSON_MEDIA_TYPE
    return encoded


def _log_failure(error: CallError, response: httpx.Response, verb: str, url: str, context: ConnectionContext) -> None:
    ref = context.ref
    if error.code is not None:
        logger.error(
            "Instance error on %s %s [cluster=%s instance=%s status=%s]: (%s) %s",
            verb,
            url,
            ref.cluster_id,
            ref.instance_id,
            response.status_code,
            error.code,
            error.message,
        )
        return
    logger.error(
        "Unexpected response on %s %s [cluster=%s instance=%s status=%s content-type=%s]: %s",
        verb,
        url,
        ref.cluster_id,
        ref.instance_id,
        response.status_code,
        response.headers.get("content-type", ""),
        _truncate(response.text),
    )


def _truncate(text: str) -> str:
    if len(text) <= MAX_LOGGED_BODY:
        return text
    return text[:MAX_LOGGED_BODY] + "..."


__all__ = ["MAX_LOGGED_BODY", "PASSTHROUGH_OPTIONS", "TransportClient", "classify_response"]
