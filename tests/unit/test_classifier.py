"""Tests for error classification.

Verifies:
- Network failures win over any status code.
- Each known error body shape is decoded (classic, alternate, errors array, Jira).
- Status codes and message text map to kinds in fixed precedence.
- Classification never raises and never mutates its input.
"""

import copy

import httpx
import pytest

from bitbucket_mcp.errors import ErrorKind, PayloadShape, classify_error, decode_error_payload
from bitbucket_mcp.services.exceptions import (
    ApiError,
    AtlassianValidationError,
    AuthInvalidError,
    NetworkError,
    RateLimitError,
)


def _status_error(status: int, body: str) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.bitbucket.org/2.0/repositories/acme/widgets")
    response = httpx.Response(status, text=body, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestNetworkErrors:

    @pytest.mark.parametrize(
        "message",
        [
            "connect ECONNREFUSED 127.0.0.1:443",
            "getaddrinfo ENOTFOUND api.bitbucket.org",
            "fetch failed",
            "Network request failed",
            "[Errno 111] Connection refused",
        ],
    )
    def test_network_text_overrides_status(self, message):
        result = classify_error(Exception(message), status_code=404)

        assert result.kind is ErrorKind.NETWORK_ERROR
        assert result.status_code == 500

    def test_httpx_transport_error(self):
        request = httpx.Request("GET", "https://api.bitbucket.org/2.0/user")
        result = classify_error(httpx.ConnectTimeout("timed out", request=request))

        assert result.kind is ErrorKind.NETWORK_ERROR

    def test_network_error_wrapping_transport_error(self):
        request = httpx.Request("GET", "https://api.bitbucket.org/2.0/user")
        error = NetworkError("Request failed", original_error=httpx.ReadTimeout("slow", request=request))

        assert classify_error(error).kind is ErrorKind.NETWORK_ERROR


class TestStatusCodes:

    @pytest.mark.parametrize(
        "status,kind",
        [
            (404, ErrorKind.NOT_FOUND),
            (401, ErrorKind.ACCESS_DENIED),
            (403, ErrorKind.ACCESS_DENIED),
            (400, ErrorKind.VALIDATION_ERROR),
            (429, ErrorKind.RATE_LIMIT_ERROR),
            (500, ErrorKind.UNKNOWN),
            (502, ErrorKind.UNKNOWN),
        ],
    )
    def test_explicit_status(self, status, kind):
        result = classify_error(Exception("upstream failure"), status_code=status)

        assert result.kind is kind
        assert result.status_code == status

    def test_status_from_exception_attribute(self):
        error = AuthInvalidError("Authentication failed: HTTP 403", status_code=403)

        result = classify_error(error)

        assert result.kind is ErrorKind.ACCESS_DENIED
        assert result.status_code == 403

    def test_rate_limit_error(self):
        assert classify_error(RateLimitError("Rate limited: HTTP 429")).kind is ErrorKind.RATE_LIMIT_ERROR

    def test_validation_error_defaults_to_400(self):
        result = classify_error(AtlassianValidationError("Invalid request: repo_slug is required"))

        assert result.kind is ErrorKind.VALIDATION_ERROR
        assert result.status_code == 400

    def test_status_from_httpx_response(self):
        result = classify_error(_status_error(404, '{"type": "error", "error": {"message": "Nope"}}'))

        assert result.kind is ErrorKind.NOT_FOUND
        assert result.status_code == 404

    def test_unknown_without_status_defaults_to_500(self):
        result = classify_error(ValueError("boom"))

        assert result.kind is ErrorKind.UNKNOWN
        assert result.status_code == 500

    def test_none(self):
        result = classify_error(None)

        assert result.kind is ErrorKind.UNKNOWN
        assert result.status_code == 500

    def test_zero_status_is_treated_as_missing(self):
        result = classify_error(ApiError("Something odd happened"))

        assert result.kind is ErrorKind.UNKNOWN
        assert result.status_code == 500


class TestPayloadShapes:

    def test_classic_bitbucket_body(self):
        body = {"type": "error", "error": {"message": "Repository not found", "detail": "acme/widgets"}}
        error = ApiError("Resource not found: HTTP 404", status_code=404, original_error=body)

        result = classify_error(error)

        assert result.kind is ErrorKind.NOT_FOUND
        assert result.status_code == 404

    def test_classic_text_overrides_generic_status(self):
        body = {"error": {"message": "Access denied to this repository"}}
        error = ApiError("API error: HTTP 500", status_code=500, original_error=body)

        result = classify_error(error)

        assert result.kind is ErrorKind.ACCESS_DENIED
        assert result.status_code == 500

    def test_classic_body_status_does_not_override_explicit_status(self):
        result = classify_error({"error": {"message": "boom"}, "status": 403}, 404)

        assert result.kind is ErrorKind.NOT_FOUND
        assert result.status_code == 404

    def test_alternate_bitbucket_body_carries_status(self):
        result = classify_error({"type": "error", "status": 403, "message": "Forbidden"})

        assert result.kind is ErrorKind.ACCESS_DENIED
        assert result.status_code == 403

    def test_errors_array_uses_first_element(self):
        body = {"errors": [{"status": 429, "title": "Too Many Requests"}, {"title": "not found"}]}

        result = classify_error(body)

        assert result.kind is ErrorKind.RATE_LIMIT_ERROR
        assert result.status_code == 429

    def test_errors_array_ignores_later_elements(self):
        body = {"errors": [{"title": "Something odd happened"}, {"title": "Branch not found"}]}

        assert classify_error(body).kind is ErrorKind.UNKNOWN

    def test_errors_array_string_status(self):
        assert classify_error({"errors": [{"status": "404", "code": "MISSING"}]}).status_code == 404

    def test_jira_body(self):
        body = {
            "errorMessages": ["Issue does not exist or you do not have permission to see it."],
            "errors": {},
        }

        assert classify_error(body).kind is ErrorKind.ACCESS_DENIED

    def test_jira_field_errors(self):
        body = {"errorMessages": [], "errors": {"jql": "The value 'FOO' is invalid"}}

        assert classify_error(body).kind is ErrorKind.VALIDATION_ERROR

    def test_json_string_body(self):
        result = classify_error('{"error": {"message": "Invalid branch name"}}')

        assert result.kind is ErrorKind.VALIDATION_ERROR

    def test_text_matching_is_case_insensitive(self):
        body = {"error": {"message": "RATE LIMIT exceeded for this token"}}

        assert classify_error(body).kind is ErrorKind.RATE_LIMIT_ERROR

    def test_not_found_takes_precedence_over_validation(self):
        body = {"error": {"message": "Branch not found"}}

        result = classify_error(body, status_code=400)

        assert result.kind is ErrorKind.NOT_FOUND
        assert result.status_code == 400

    def test_unrecognized_body_uses_status_only(self):
        result = classify_error({"detail": "not found"}, status_code=502)

        assert result.kind is ErrorKind.UNKNOWN
        assert result.status_code == 502


class TestDecodeErrorPayload:

    def test_classic(self):
        payload = decode_error_payload({"error": {"message": "Bad", "detail": "More"}})

        assert payload.shape is PayloadShape.CLASSIC
        assert payload.text == "Bad More"

    def test_alternate(self):
        payload = decode_error_payload({"type": "error", "message": "Oops", "status": 400})

        assert payload.shape is PayloadShape.ALTERNATE
        assert payload.status == 400

    def test_jira(self):
        payload = decode_error_payload({"errorMessages": ["One"], "errors": {"field": "Two"}})

        assert payload.shape is PayloadShape.JIRA
        assert payload.text == "One field: Two"

    def test_follows_original_error_chain(self):
        inner = ApiError("inner", status_code=404, original_error={"error": {"message": "gone"}})
        outer = NetworkError("outer", original_error=inner)

        assert decode_error_payload(outer).text == "gone"

    def test_plain_text_has_no_payload(self):
        assert decode_error_payload("Bad Gateway") is None
        assert decode_error_payload(ValueError("boom")) is None


class TestPurity:

    def test_does_not_mutate_input(self):
        body = {"errors": [{"status": 404, "title": "Not Found"}], "extra": {"nested": [1, 2]}}
        snapshot = copy.deepcopy(body)

        classify_error(body, status_code=400)

        assert body == snapshot

    def test_cyclic_chain_terminates(self):
        class Loop(Exception):
            pass

        error = Loop("loop")
        error.original_error = error

        assert classify_error(error).kind is ErrorKind.UNKNOWN

    def test_broken_str_does_not_raise(self):
        class Broken(Exception):
            def __str__(self):
                raise RuntimeError("no str")

        assert classify_error(Broken()).kind is ErrorKind.UNKNOWN
