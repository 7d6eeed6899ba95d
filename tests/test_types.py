"""Tests for request and result types."""

import base64

import pytest

from utilfetch import Diagnostic, Diagnostics, FetchResult, RequestSpec, RetryConfig, Severity


class TestRequestSpec:
    """Tests for RequestSpec validation."""

    def test_defaults(self) -> None:
        spec = RequestSpec("http://example.com")
        assert spec.method == "GET"
        assert spec.body is None
        assert spec.timeout_seconds is None
        assert spec.success_status_codes == frozenset()

    @pytest.mark.parametrize(("method", "expected"), [("", "GET"), ("post", "POST"), ("Head", "HEAD")])
    def test_method_is_normalized(self, method: str, expected: str) -> None:
        assert RequestSpec("http://example.com", method=method).method == expected

    @pytest.mark.parametrize("method", ["PUT", "DELETE", "PATCH"])
    def test_unsupported_method(self, method: str) -> None:
        with pytest.raises(ValueError, match="unsupported method"):
            RequestSpec("http://example.com", method=method)

    @pytest.mark.parametrize(("timeout_ms", "expected"), [(None, None), (0, None), (-5, None), (1500, 1.5)])
    def test_timeout_seconds(self, timeout_ms: int | None, expected: float | None) -> None:
        assert RequestSpec("http://example.com", timeout_ms=timeout_ms).timeout_seconds == expected

    def test_headers_are_frozen(self) -> None:
        headers = {"Accept": "text/plain"}
        spec = RequestSpec("http://example.com", headers=headers)
        headers["Accept"] = "application/json"

        assert spec.headers["Accept"] == "text/plain"
        with pytest.raises(TypeError):
            spec.headers["Accept"] = "changed"  # type: ignore[index]


class TestRetryConfig:
    """Tests for RetryConfig validation."""

    def test_negative_attempts(self) -> None:
        with pytest.raises(ValueError, match="attempts"):
            RetryConfig(attempts=-1)

    def test_negative_delay(self) -> None:
        with pytest.raises(ValueError, match="min_delay_ms"):
            RetryConfig(min_delay_ms=-1)

    def test_max_below_min(self) -> None:
        with pytest.raises(ValueError, match="must be at least min_delay_ms"):
            RetryConfig(min_delay_ms=200, max_delay_ms=100)


class TestFetchResult:
    """Tests for FetchResult encodings."""

    def test_encodings_share_bytes(self) -> None:
        result = FetchResult(200, {}, "héllo".encode(), utf8_valid=True)
        assert result.response_body == "héllo"
        assert base64.b64decode(result.response_body_base64) == "héllo".encode()

    def test_invalid_utf8_still_decodes(self) -> None:
        result = FetchResult(200, {}, b"\xff", utf8_valid=False)
        assert result.response_body == "�"
        assert result.response_body_base64 == "/w=="


class TestDiagnostics:
    """Tests for the diagnostics collection."""

    def test_errors_and_warnings(self) -> None:
        diagnostics = Diagnostics(
            [
                Diagnostic.warning("ResponseEncodingWarning", "not utf-8"),
                Diagnostic.error("RequestError", "Error making request", "boom"),
            ],
        )
        assert diagnostics.has_error()
        assert [d.kind for d in diagnostics.errors()] == ["RequestError"]
        assert [d.severity for d in diagnostics.warnings()] == [Severity.WARNING]

    def test_warnings_only(self) -> None:
        assert not Diagnostics([Diagnostic.warning("ResponseEncodingWarning", "not utf-8")]).has_error()
