"""
Property-based tests for endpoint models, credentials and exceptions.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from wings_client.credentials import Credential
from wings_client.exceptions import NotFoundError, WingsAuthenticationError, WingsConnectionError
from wings_client.models import Endpoint, normalize_host


label_strategy = st.from_regex(r"[a-zA-Z][a-zA-Z0-9-]{0,14}[a-zA-Z0-9]", fullmatch=True)


class TestEndpointProperty:
    """base_url is always protocol://host:port without a trailing slash."""

    @given(
        labels=st.lists(label_strategy, min_size=1, max_size=4),
        port=st.integers(min_value=1, max_value=65535),
        protocol=st.sampled_from(["http", "https", "HTTPS"]),
        trailing=st.sampled_from(["", "/", "//"]),
    )
    @settings(max_examples=100)
    def test_base_url_shape(self, labels: list[str], port: int, protocol: str, trailing: str) -> None:
        host = ".".join(labels)
        endpoint = Endpoint(host=host + trailing, port=port, protocol=protocol)

        assert endpoint.base_url == f"{protocol.lower()}://{host.lower()}:{port}"
        assert not endpoint.base_url.endswith("/")
        assert not endpoint.is_ip_literal

    @given(address=st.ip_addresses(v=6).map(str))
    @settings(max_examples=50)
    def test_ipv6_literal_is_bracketed(self, address: str) -> None:
        endpoint = Endpoint(host=address)
        assert endpoint.is_ipv6_literal
        assert endpoint.base_url == f"http://[{address}]:8080"

    @given(address=st.ip_addresses(v=4).map(str))
    @settings(max_examples=50)
    def test_ipv4_literal_unchanged(self, address: str) -> None:
        endpoint = Endpoint(host=address, port=2022)
        assert endpoint.is_ip_literal
        assert not endpoint.is_ipv6_literal
        assert endpoint.base_url == f"http://{address}:2022"

    def test_bracketed_ipv6_input(self) -> None:
        assert Endpoint(host="[fd00::1]").host == "fd00::1"

    def test_internationalized_name(self) -> None:
        assert normalize_host("bücher.example") == "xn--bcher-kva.example"

    @pytest.mark.parametrize("host", ["", "   ", "/"])
    def test_empty_host_rejected(self, host: str) -> None:
        with pytest.raises(ValueError):
            normalize_host(host)

    def test_endpoint_is_immutable(self) -> None:
        endpoint = Endpoint(host="node")
        with pytest.raises(AttributeError):
            endpoint.port = 1  # type: ignore[misc]


class TestCredential:
    """The credential never leaks through repr."""

    @given(secret=st.text(min_size=1, max_size=40))
    @settings(max_examples=50)
    def test_header_and_repr(self, secret: str) -> None:
        credential = Credential(secret)
        assert credential.authorization_header() == f"Bearer {secret}"
        assert credential.is_set
        assert repr(credential) == "Credential(is_set=True)"

    def test_empty_and_rotation(self) -> None:
        credential = Credential()
        assert credential.authorization_header() is None
        credential.rotate("new")
        assert credential.value == "new"


class TestErrorSerialization:
    def test_to_dict(self) -> None:
        error = WingsConnectionError("retries_exhausted", "All retry attempts failed", {"attempts": 4})
        assert error.to_dict() == {
            "error_type": "WingsConnectionError",
            "code": "retries_exhausted",
            "message": "All retry attempts failed",
            "details": {"attempts": 4},
        }
        not_found = NotFoundError("not_found", "Endpoint not found: /x", 404)
        assert not_found.to_dict()["status_code"] == 404
        assert str(not_found) == "Endpoint not found: /x"

    @given(status=st.sampled_from([401, 403]))
    @settings(max_examples=10)
    def test_authentication_error_carries_status(self, status: int) -> None:
        error = WingsAuthenticationError("unauthorized", "Authentication failed: bad token", status)
        assert error.status_code == status
        assert error.to_dict()["status_code"] == status
        assert error.details == {}
