"""Unit tests for client IP extraction."""

from starlette.datastructures import Headers
from starlette.requests import Request

from admission.utils.client_ip import extract_client_ip


def _request(headers: dict[str, str]) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": Headers(headers).raw,
        "client": ("127.0.0.1", 50000),
    }
    return Request(scope)


def test_first_forwarded_for_hop_wins() -> None:
    assert extract_client_ip({"x-forwarded-for": "1.2.3.4, 5.6.7.8"}) == "1.2.3.4"


def test_connecting_ip_header_takes_priority() -> None:
    headers = {
        "cf-connecting-ip": "9.9.9.9",
        "x-forwarded-for": "1.2.3.4, 5.6.7.8",
        "x-real-ip": "7.7.7.7",
    }
    assert extract_client_ip(headers) == "9.9.9.9"


def test_real_ip_is_used_without_forwarded_for() -> None:
    assert extract_client_ip({"x-real-ip": " 7.7.7.7 "}) == "7.7.7.7"


def test_empty_candidates_fall_through() -> None:
    headers = {"cf-connecting-ip": "  ", "x-forwarded-for": " , 5.6.7.8", "x-real-ip": "7.7.7.7"}
    assert extract_client_ip(headers) == "7.7.7.7"


def test_returns_none_without_headers() -> None:
    assert extract_client_ip({}) is None


def test_plain_dict_lookup_is_case_insensitive() -> None:
    assert extract_client_ip({"X-Forwarded-For": "1.2.3.4"}) == "1.2.3.4"


def test_accepts_request_and_ignores_socket_peer() -> None:
    assert extract_client_ip(_request({"X-Forwarded-For": "203.0.113.9"})) == "203.0.113.9"
    assert extract_client_ip(_request({})) is None


def test_ipv6_forwarded_for() -> None:
    assert extract_client_ip({"x-forwarded-for": "2001:db8::1, 10.0.0.1"}) == "2001:db8::1"
