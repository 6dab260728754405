"""Tests for redirect base URL resolution."""

from ordering.checkout.urls import LOCAL_DEFAULT, cancel_url, resolve_base_url, success_url
from shared.config import Settings


class TestResolveBaseUrl:
    def test_configured_public_url_wins(self):
        settings = Settings(public_site_url="https://shop.example/")
        headers = {"origin": "https://other.example", "host": "localhost:3000"}
        assert resolve_base_url(settings, headers) == "https://shop.example"

    def test_origin_header(self):
        headers = {"Origin": "https://preview.example", "Host": "internal:8000"}
        assert resolve_base_url(Settings(), headers) == "https://preview.example"

    def test_localhost_host_uses_http(self):
        assert resolve_base_url(Settings(), {"host": "localhost:3000"}) == "http://localhost:3000"
        assert resolve_base_url(Settings(), {"host": "127.0.0.1:8000"}) == "http://127.0.0.1:8000"

    def test_public_host_uses_https(self):
        assert resolve_base_url(Settings(), {"host": "shop.example"}) == "https://shop.example"

    def test_platform_url_gets_scheme(self):
        settings = Settings(platform_url="my-shop.platform.app")
        assert resolve_base_url(settings, {}) == "https://my-shop.platform.app"

    def test_platform_url_with_scheme_is_kept(self):
        settings = Settings(platform_url="https://my-shop.platform.app/")
        assert resolve_base_url(settings) == "https://my-shop.platform.app"

    def test_local_default(self):
        assert resolve_base_url(Settings()) == LOCAL_DEFAULT == "http://localhost:3000"

    def test_blank_headers_are_skipped(self):
        assert resolve_base_url(Settings(), {"origin": "  ", "host": "shop.example"}) == "https://shop.example"


class TestRedirectUrls:
    def test_success_url_carries_session_placeholder(self):
        assert success_url("https://shop.example") == "https://shop.example/checkout/success?sid={CHECKOUT_SESSION_ID}"

    def test_cancel_url_returns_to_checkout(self):
        assert cancel_url("https://shop.example") == "https://shop.example/checkout"
