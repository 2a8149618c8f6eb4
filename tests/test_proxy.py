"""Tests for the third-party proxy endpoints."""

import httpx
import msgpack

from floaty.proxy import search


def _html(body: str, title: str = "Example") -> str:
    return f"<html><head><title>{title}</title><script>var x = 1;</script></head><body>{body}</body></html>"


# --- API key guard ---

def test_proxy_requires_api_key(client):
    resp = client.get("/api/health")
    assert resp.status_code == 401
    body = resp.json()
    assert body["status"] == "error"
    assert body["error"]["type"] == "authentication_error"


def test_proxy_rejects_wrong_api_key(client):
    resp = client.get("/api/health", headers={"x-api-key": "nope"})
    assert resp.status_code == 401


def test_proxy_health(client, api_key_header):
    resp = client.get("/api/health", headers=api_key_header)
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["api_key_configured"] is True
    assert data["platform"] == "fastapi"


def test_root_health_is_open(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_missing_api_secret_is_server_error(client, api_key_header, monkeypatch):
    from floaty.config.settings import get_settings

    monkeypatch.setattr(get_settings(), "API_SECRET", "")
    resp = client.get("/api/health", headers=api_key_header)
    assert resp.status_code == 500
    assert resp.json()["error"]["message"] == "Server API key not configured"


# --- Fish Audio ---

def test_models_requires_fish_key(client, api_key_header):
    resp = client.get("/api/models", headers=api_key_header)
    assert resp.status_code == 400


def test_models_forwards_bearer_key(client, api_key_header, mock_http):
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        return httpx.Response(200, json={"items": [{"_id": "abc"}]})

    mock_http(handler)
    resp = client.get("/api/models", headers={**api_key_header, "x-fish-api-key": "user-key"})
    assert resp.status_code == 200
    assert resp.json() == {"items": [{"_id": "abc"}]}
    assert seen == {"auth": "Bearer user-key", "path": "/v1/models"}


def test_models_upstream_failure(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(503))
    resp = client.get("/api/models", headers={**api_key_header, "x-fish-api-key": "user-key"})
    assert resp.status_code == 500
    assert resp.json()["error"]["message"] == "Failed to fetch model list"


def test_model_info_missing_params(client, api_key_header):
    resp = client.get("/api/model-info", headers=api_key_header)
    assert resp.status_code == 400

    resp = client.get("/api/model-info?modelId=abc", headers=api_key_header)
    assert resp.status_code == 400


def test_model_info_found(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(200, json={"_id": "abc", "title": "Narrator"}))
    resp = client.get("/api/model-info/abc", headers={**api_key_header, "fish-audio-key": "k"})
    assert resp.status_code == 200
    assert resp.json()["title"] == "Narrator"


def test_model_info_not_found(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(404))
    resp = client.get("/api/model-info?modelId=missing", headers={**api_key_header, "fish-audio-key": "k"})
    assert resp.status_code == 404
    assert resp.json()["error"]["message"] == "Model not found"


def test_model_info_upstream_status_passes_through(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(402))
    resp = client.get("/api/model-info/abc", headers={**api_key_header, "fish-audio-key": "k"})
    assert resp.status_code == 402
    assert resp.json()["error"]["type"] == "upstream_error"


def test_model_info_timeout(client, api_key_header, mock_http):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    mock_http(handler)
    resp = client.get("/api/model-info/abc", headers={**api_key_header, "fish-audio-key": "k"})
    assert resp.status_code == 408
    assert resp.json()["error"]["type"] == "timeout"


def test_validate_key_blank(client, api_key_header):
    resp = client.post("/api/validate-key", json={"apiKey": "  "}, headers=api_key_header)
    assert resp.status_code == 200
    assert resp.json() == {"valid": False, "error": "No Fish Audio API key provided"}


def test_validate_key_outcomes(client, api_key_header, mock_http):
    cases = {200: {"valid": True}, 401: {"valid": False, "error": "API key is invalid or expired"},
             429: {"valid": False, "error": "Too many requests, try again later"},
             500: {"valid": False, "error": "API key is invalid"}}
    for status, expected in cases.items():
        mock_http(lambda request, status=status: httpx.Response(status))
        resp = client.post("/api/validate-key", json={"apiKey": "k"}, headers=api_key_header)
        assert resp.status_code == 200
        assert resp.json() == expected


def test_validate_key_uses_custom_api_url(client, api_key_header, mock_http):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        raise httpx.ConnectError("refused", request=request)

    mock_http(handler)
    resp = client.post(
        "/api/validate-key",
        json={"apiKey": "k", "apiUrl": "https://fish.example.com/"},
        headers=api_key_header,
    )
    assert resp.json() == {"valid": False, "error": "Unable to reach the Fish Audio API"}
    assert seen["url"] == "https://fish.example.com/model"


def test_tts_model_list(client, api_key_header):
    resp = client.get("/api/tts", headers=api_key_header)
    assert resp.json() == {"success": True, "models": ["speech-1.5", "speech-1.6", "s1"], "default": "speech-1.6"}


def test_tts_requires_text(client, api_key_header):
    resp = client.post("/api/tts", json={}, headers=api_key_header)
    assert resp.status_code == 400


def test_tts_streams_audio(client, api_key_header, mock_http):
    seen = {}

    def handler(request: httpx.Request):
        seen["content_type"] = request.headers["Content-Type"]
        seen["model"] = request.headers["model"]
        seen["payload"] = msgpack.unpackb(request.content)
        return httpx.Response(200, content=b"ID3audio-bytes")

    mock_http(handler)
    resp = client.post("/api/tts", json={"text": "hello", "model": "unknown-model"}, headers=api_key_header)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "audio/mp3"
    assert resp.content == b"ID3audio-bytes"
    assert seen["content_type"] == "application/msgpack"
    assert seen["model"] == "speech-1.6"
    assert seen["payload"]["text"] == "hello"
    assert seen["payload"]["references"] == []


def test_tts_upstream_error(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(402))
    resp = client.post("/api/tts", json={"text": "hello"}, headers=api_key_header)
    assert resp.status_code == 402
    assert resp.json()["error"]["type"] == "upstream_error"


# --- Search ---

def test_search_requires_query(client, api_key_header):
    resp = client.get("/api/search", headers=api_key_header)
    assert resp.status_code == 400


def test_search_rejects_unknown_provider(client, api_key_header):
    resp = client.get("/api/search?q=x&provider=bing&key=k&cx=c", headers=api_key_header)
    assert resp.status_code == 400
    assert resp.json()["error"]["details"] == {"provider": "bing"}


def test_search_requires_credentials(client, api_key_header):
    resp = client.get("/api/search?q=python", headers=api_key_header)
    assert resp.status_code == 400


def test_search_maps_items(client, api_key_header, mock_http):
    seen = {}

    def handler(request: httpx.Request):
        if request.method == "HEAD":
            return httpx.Response(200, headers={"Last-Modified": "Wed, 21 Oct 2015 07:28:00 GMT"})
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={
            "searchInformation": {"totalResults": "42", "searchTime": 0.12},
            "items": [
                {
                    "title": "Dated",
                    "link": "https://a.example.com",
                    "snippet": "a",
                    "pagemap": {"metatags": [{"Article:Published_Time": "2024-03-01T10:00:00+02:00"}]},
                },
                {"title": "Undated", "link": "https://b.example.com", "snippet": "b"},
            ],
        })

    mock_http(handler)
    resp = client.get(
        "/api/search?q=python&num=50&safe=on&key=k&cx=c&withDate=true&lang=en",
        headers=api_key_header,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert seen["params"]["num"] == "10"
    assert seen["params"]["safe"] == "active"
    assert seen["params"]["hl"] == "en"
    assert data["provider"] == "google-cse"
    assert data["searchInformation"] == {"totalResults": 42, "time": 0.12}

    dated, undated = data["items"]
    assert dated["date"] == "2024-03-01T08:00:00Z"
    assert dated["dateSource"] == "pagemap"
    assert dated["dateConfidence"] == "high"
    assert undated["date"] == "2015-10-21T07:28:00Z"
    assert undated["dateSource"] == "http-header"
    assert undated["dateConfidence"] == "low"


def test_search_upstream_error_message(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(403, json={"error": {"message": "Daily limit exceeded"}}))
    resp = client.get("/api/search?q=python&key=k&cx=c", headers=api_key_header)
    assert resp.status_code == 403
    assert resp.json()["error"]["details"] == "Daily limit exceeded"


def test_search_upstream_error_without_message(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(500, json=[{"error": "backend"}]))
    resp = client.get("/api/search?q=python&key=k&cx=c", headers=api_key_header)
    assert resp.status_code == 500
    assert resp.json()["error"]["type"] == "upstream_error"
    assert resp.json()["error"]["details"] == "Internal Server Error"


def test_search_upstream_error_as_string(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(400, json={"error": "invalid_request"}))
    resp = client.get("/api/search?q=python&key=k&cx=c", headers=api_key_header)
    assert resp.status_code == 400
    assert resp.json()["error"]["details"] == "invalid_request"


def test_extract_date_from_entities():
    published = {"pagemap": {"newsarticle": [{"datepublished": "2024-05-01", "datemodified": "2024-06-01"}]}}
    assert search.extract_date(published) == {"date": "2024-05-01T00:00:00Z", "source": "pagemap", "confidence": "high"}

    modified = {"pagemap": {"blogposting": [{"datemodified": "1717200000"}]}}
    assert search.extract_date(modified) == {"date": "2024-06-01T00:00:00Z", "source": "pagemap", "confidence": "medium"}


def test_extract_date_prefers_metatags_and_skips_junk():
    item = {
        "pagemap": {
            "metatags": ["junk", {"og:updated_time": "1717200000000"}],
            "article": [{"datepublished": "2020-01-01"}],
        }
    }
    assert search.extract_date(item) == {"date": "2024-06-01T00:00:00Z", "source": "pagemap", "confidence": "medium"}
    assert search.extract_date({"pagemap": {"webpage": [{"datepublished": "not a date"}]}}) is None
    assert search.extract_date({}) is None


def test_normalize_num():
    assert search.normalize_num("3") == 3
    assert search.normalize_num("7.5") == 7
    assert search.normalize_num("3abc") == 3
    assert search.normalize_num("abc") == 5
    assert search.normalize_num("0") == 5
    assert search.normalize_num(None) == 5
    assert search.normalize_num("-4") == 1
    assert search.normalize_num("50") == 10


# --- Page visits ---

def test_visit_page_requires_url(client, api_key_header):
    resp = client.get("/api/visit-page", headers=api_key_header)
    assert resp.status_code == 400


def test_visit_page_extracts_text(client, api_key_header, mock_http):
    paragraph = "Readable article text. " * 60
    html = _html(f"<nav>Menu</nav><div class='ads'>Buy</div><p>{paragraph}</p><footer>Foot</footer>", "Article")
    mock_http(lambda request: httpx.Response(200, text=html))

    resp = client.get("/api/visit-page?url=https://example.com/a", headers=api_key_header)
    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "Article"
    assert "Menu" not in data["content"]
    assert "Buy" not in data["content"]
    assert "Foot" not in data["content"]
    assert data["content"].startswith("Readable article text.")
    assert data["needsJavaScript"] is False
    assert data["length"] == len(data["content"])


def test_visit_page_flags_thin_pages(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(200, text=_html("<div id='root'></div>")))
    resp = client.get("/api/visit-page?url=https://spa.example.com", headers=api_key_header)
    data = resp.json()
    assert data["needsJavaScript"] is True
    assert data["content"] == "Unable to extract meaningful content"
    assert data["length"] == 0


def test_visit_page_truncates(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(200, text=_html("<p>" + "x" * 30000 + "</p>")))
    resp = client.get("/api/visit-page?url=https://long.example.com", headers=api_key_header)
    content = resp.json()["content"]
    assert content.endswith("... (content truncated)")
    assert len(content) == 20000 + len("... (content truncated)")


def test_visit_page_upstream_status(client, api_key_header, mock_http):
    mock_http(lambda request: httpx.Response(404))
    resp = client.get("/api/visit-page?url=https://gone.example.com", headers=api_key_header)
    assert resp.status_code == 404
    assert resp.json()["error"]["details"]["url"] == "https://gone.example.com"


def test_visit_page_timeout(client, api_key_header, mock_http):
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    mock_http(handler)
    resp = client.get("/api/visit-page?url=https://slow.example.com", headers=api_key_header)
    assert resp.status_code == 408
    assert resp.json()["error"]["details"]["message"] == "Request timed out"
