import httpx
import pytest

from campaign_engine.errors import ValidationError
from campaign_engine.services import image_urls
from campaign_engine.services.image_urls import check_image_url_shape, validate_image_url


def _head_returning(status_code, content_type):
    calls = []

    def request(method, url, **kwargs):
        calls.append((method, url, kwargs))
        return httpx.Response(status_code, headers={"content-type": content_type}, request=httpx.Request(method, url))

    return request, calls


def test_validate_image_url_accepts_live_image(monkeypatch):
    request, calls = _head_returning(200, "image/jpeg; charset=binary")
    monkeypatch.setattr(image_urls.httpx, "request", request)

    assert validate_image_url(" https://cdn.example.com/a.jpg ") == "https://cdn.example.com/a.jpg"
    method, url, kwargs = calls[0]
    assert method == "HEAD"
    assert kwargs["follow_redirects"] is True


@pytest.mark.parametrize("status_code, content_type", [(200, "text/html"), (404, "image/png"), (403, "")])
def test_validate_image_url_rejects_non_images(monkeypatch, status_code, content_type):
    request, _ = _head_returning(status_code, content_type)
    monkeypatch.setattr(image_urls.httpx, "request", request)

    with pytest.raises(ValidationError):
        validate_image_url("https://cdn.example.com/a.jpg")


def test_validate_image_url_unreachable(monkeypatch):
    def request(method, url, **kwargs):
        raise httpx.ConnectTimeout("timed out", request=httpx.Request(method, url))

    monkeypatch.setattr(image_urls.httpx, "request", request)

    with pytest.raises(ValidationError, match="not reachable"):
        validate_image_url("https://cdn.example.com/a.jpg")


@pytest.mark.parametrize(
    "url",
    [None, "", "ftp://cdn.example.com/a.jpg", "cdn.example.com/a.jpg", "https://docs.google.com/uc?id=abc"],
)
def test_check_image_url_shape_rejects(url):
    with pytest.raises(ValidationError):
        check_image_url_shape(url)
