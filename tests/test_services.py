"""Capability provider tests. HTTP is served by httpx.MockTransport; nothing leaves the process."""
import httpx
import pytest

from fashion_buddy.core.config import Settings
from fashion_buddy.core.errors import AnalysisError, CompositionError, DeliveryError, MediaError, SearchError
from fashion_buddy.core.flags import FeatureFlags
from fashion_buddy.core.storage import LocalStorage
from fashion_buddy.services import dispatcher as dispatcher_mod
from fashion_buddy.services import media as media_mod
from fashion_buddy.services import shopping as shopping_mod
from fashion_buddy.services import tryon as tryon_mod
from fashion_buddy.services import vision as vision_mod
from fashion_buddy.services.dispatcher import MessageDispatcher, normalize_address, split_message
from fashion_buddy.services.media import MediaStore
from fashion_buddy.services.shopping import (
    ProductSearch,
    ShoppingProduct,
    build_query,
    filter_by_budget,
    parse_budget,
    parse_price,
)
from fashion_buddy.services.tryon import GarmentCompositor
from fashion_buddy.services.vision import VisionAnalyzer, detect_image_format, parse_analysis

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 100
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 100


class TestDispatcher:
    def test_normalize_address(self):
        assert normalize_address("whatsapp:+91 98123 45678") == "+919812345678"
        assert normalize_address("  +14155238886 ") == "+14155238886"
        assert normalize_address("") == ""

    def test_short_text_is_one_chunk(self):
        assert split_message("hello", 1500) == ["hello"]

    def test_long_text_splits_on_lines(self):
        text = "\n".join(f"line {i:03d} " + "x" * 40 for i in range(100))
        chunks = split_message(text, 1500)

        assert len(chunks) > 1
        assert all(len(c) <= 1500 for c in chunks)
        assert "\n".join(chunks) == text

    def test_overlong_line_is_hard_wrapped(self):
        chunks = split_message("y" * 3200, 1500)
        assert [len(c) for c in chunks] == [1500, 1500, 200]

    async def test_mock_mode_sends_nothing(self, monkeypatch):
        def no_network(request):
            raise AssertionError("network used in mock mode")

        monkeypatch.setattr(dispatcher_mod, "get_flags", lambda: FeatureFlags(FF_USE_TWILIO=False))
        client = httpx.AsyncClient(transport=httpx.MockTransport(no_network))
        await MessageDispatcher(client).send("whatsapp:+919812345678", "hi")

    async def test_twilio_send_chunks_with_media_on_first(self, monkeypatch):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, json={"sid": f"SM{len(requests)}"})

        monkeypatch.setattr(dispatcher_mod, "get_flags", lambda: FeatureFlags(FF_USE_TWILIO=True))
        monkeypatch.setattr(dispatcher_mod, "get_settings", lambda: Settings(
            TWILIO_ACCOUNT_SID="AC123", TWILIO_AUTH_TOKEN="secret",
            TWILIO_PHONE_NUMBER="+14155238886", MESSAGE_CHUNK_SIZE=10,
        ))
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        await MessageDispatcher(client).send("+919812345678", "first\nsecond\nthird", "https://img")

        assert len(requests) == 3
        assert requests[0].url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        assert requests[0].headers["authorization"].startswith("Basic ")
        forms = [dict(httpx.QueryParams(r.content.decode())) for r in requests]
        assert forms[0]["To"] == "whatsapp:+919812345678"
        assert forms[0]["From"] == "whatsapp:+14155238886"
        assert forms[0]["MediaUrl"] == "https://img"
        assert "MediaUrl" not in forms[1]
        assert [f["Body"] for f in forms] == ["first", "second", "third"]

    async def test_twilio_error_is_delivery_error(self, monkeypatch):
        monkeypatch.setattr(dispatcher_mod, "get_flags", lambda: FeatureFlags(FF_USE_TWILIO=True))
        monkeypatch.setattr(dispatcher_mod, "get_settings", lambda: Settings(
            TWILIO_ACCOUNT_SID="AC123", TWILIO_AUTH_TOKEN="secret", TWILIO_PHONE_NUMBER="+14155238886",
        ))
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(400, json={"message": "bad number"})
        ))

        with pytest.raises(DeliveryError):
            await MessageDispatcher(client).send("+91", "hi")

    async def test_accepted_with_non_json_body(self, monkeypatch):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, text="<Response/>")

        monkeypatch.setattr(dispatcher_mod, "get_flags", lambda: FeatureFlags(FF_USE_TWILIO=True))
        monkeypatch.setattr(dispatcher_mod, "get_settings", lambda: Settings(
            TWILIO_ACCOUNT_SID="AC123", TWILIO_AUTH_TOKEN="secret", TWILIO_PHONE_NUMBER="+14155238886",
        ))
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        await MessageDispatcher(client).send("+919812345678", "hi")

        assert len(requests) == 1

    async def test_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(dispatcher_mod, "get_flags", lambda: FeatureFlags(FF_USE_TWILIO=True))
        monkeypatch.setattr(dispatcher_mod, "get_settings", lambda: Settings())

        with pytest.raises(DeliveryError):
            await MessageDispatcher().send("+91", "hi")


class TestShopping:
    def test_parse_budget(self):
        assert parse_budget("500-1500") == (500.0, 1500.0)
        assert parse_budget("3000+") == (3000.0, None)

    def test_parse_price(self):
        assert parse_price("₹1,299.00") == 1299.0
        assert parse_price(899) == 899.0
        assert parse_price("") is None
        assert parse_price("Free") is None

    def test_filter_by_budget_open_upper_bound(self):
        products = [
            ShoppingProduct(title=str(p), price=p, brand="b", link="l") for p in (400, 500, 1500, 2999, 9000)
        ]
        assert [p.price for p in filter_by_budget(products, "500-1500")] == [500, 1500]
        assert [p.price for p in filter_by_budget(products, "3000+")] == [9000]

    def test_build_query(self):
        assert build_query(["Navy", "Teal", "Maroon", "Gold"]) == "clothing Navy OR Teal OR Maroon indian fashion"
        assert build_query([], "Deep") == "Deep colored shirts"

    async def test_search_filters_and_limits(self, monkeypatch):
        seen = {}

        def handler(request):
            seen.update(dict(request.url.params))
            results = [
                {"title": f"Shirt {i}", "price": f"₹{1500 + i * 100}", "source": "Myntra", "link": f"https://s/{i}"}
                for i in range(10)
            ]
            results.append({"title": "Too cheap", "extracted_price": 99, "link": "https://s/cheap"})
            return httpx.Response(200, json={"shopping_results": results})

        monkeypatch.setattr(shopping_mod, "get_settings", lambda: Settings(SERP_API_KEY="k"))
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        products = await ProductSearch(client).search("clothing Navy indian fashion", "1500-3000")

        assert seen["engine"] == "google_shopping"
        assert seen["q"] == "clothing Navy indian fashion"
        assert len(products) == 5
        assert products[0].title == "Shirt 0"
        assert products[0].brand == "Unknown"
        assert all(1500 <= p.price <= 3000 for p in products)

    async def test_http_failure_is_search_error(self, monkeypatch):
        monkeypatch.setattr(shopping_mod, "get_settings", lambda: Settings(SERP_API_KEY="k"))
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))

        with pytest.raises(SearchError):
            await ProductSearch(client).search("q", "500-1500")

    async def test_no_results_is_empty(self, monkeypatch):
        monkeypatch.setattr(shopping_mod, "get_settings", lambda: Settings(SERP_API_KEY="k"))
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"error": "Google hasn't returned any results for this query."})
        ))

        assert await ProductSearch(client).search("q", "500-1500") == []

    async def test_missing_key(self, monkeypatch):
        monkeypatch.setattr(shopping_mod, "get_settings", lambda: Settings(SERP_API_KEY=""))
        with pytest.raises(SearchError):
            await ProductSearch().search("q", "500-1500")


class TestVision:
    def test_detect_image_format(self):
        assert detect_image_format(JPEG) == "jpeg"
        assert detect_image_format(PNG) == "png"
        assert detect_image_format(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "webp"
        assert detect_image_format(b"GIF89a...") == "gif"
        assert detect_image_format(b"hello") == "unknown"

    def test_error_field_is_analysis_error(self):
        with pytest.raises(AnalysisError, match="no face"):
            parse_analysis({"error": "no face", "suggestion": "retake in daylight"})

    def test_incomplete_answer_is_analysis_error(self):
        with pytest.raises(AnalysisError):
            parse_analysis({"tone": "Medium", "undertone": "Warm", "recommendedColors": []})

    async def test_analyze(self, monkeypatch):
        calls = []

        async def fake_chat(prompt, image_urls, system="", **kwargs):
            calls.append(image_urls)
            return {
                "tone": "Medium Brown", "undertone": "Neutral",
                "recommendedColors": ["Navy Blue"], "colorsToAvoid": ["Bright Orange"],
            }

        monkeypatch.setattr(vision_mod.llm, "chat_json_with_vision", fake_chat)
        analysis = await VisionAnalyzer().analyze(PNG)

        assert analysis.tone == "Medium Brown"
        assert analysis.recommended_colors == ["Navy Blue"]
        assert calls[0][0].startswith("data:image/png;base64,")

    async def test_transport_failure_is_analysis_error(self, monkeypatch):
        async def fake_chat(*args, **kwargs):
            raise httpx.ConnectError("refused")

        monkeypatch.setattr(vision_mod.llm, "chat_json_with_vision", fake_chat)
        with pytest.raises(AnalysisError):
            await VisionAnalyzer().analyze(JPEG)

    async def test_tiny_image_rejected(self):
        with pytest.raises(AnalysisError):
            await VisionAnalyzer().analyze(b"abc")


class TestTryOn:
    async def test_retries_then_succeeds(self, monkeypatch):
        attempts = []

        def flaky(body_image, garment, model):
            attempts.append(garment)
            if len(attempts) < 2:
                raise RuntimeError("503 overloaded")
            return b"\x89PNG result"

        monkeypatch.setattr(tryon_mod, "_sync_compose", flaky)
        monkeypatch.setattr(tryon_mod, "BASE_DELAY", 0)
        monkeypatch.setattr(tryon_mod.random, "uniform", lambda a, b: 0)

        assert await GarmentCompositor().compose(JPEG, "red saree") == b"\x89PNG result"
        assert len(attempts) == 2

    async def test_gives_up_after_max_attempts(self, monkeypatch):
        def broken(body_image, garment, model):
            raise RuntimeError("always down")

        monkeypatch.setattr(tryon_mod, "_sync_compose", broken)
        monkeypatch.setattr(tryon_mod, "BASE_DELAY", 0)
        monkeypatch.setattr(tryon_mod.random, "uniform", lambda a, b: 0)

        with pytest.raises(CompositionError):
            await GarmentCompositor().compose(JPEG, "red saree")

    async def test_empty_description(self):
        with pytest.raises(CompositionError):
            await GarmentCompositor().compose(JPEG, "  ")


class TestMedia:
    async def test_fetch_uses_twilio_auth(self, monkeypatch):
        seen = []

        def handler(request):
            seen.append(request.headers.get("authorization"))
            return httpx.Response(200, content=JPEG, headers={"content-type": "image/jpeg"})

        monkeypatch.setattr(media_mod, "get_settings", lambda: Settings(
            TWILIO_ACCOUNT_SID="AC123", TWILIO_AUTH_TOKEN="secret",
        ))
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        data = await MediaStore(client=client).fetch(
            "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages/MM1/Media/ME1"
        )

        assert data == JPEG
        assert seen[0].startswith("Basic ")

    async def test_fetch_failure_is_media_error(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

        with pytest.raises(MediaError):
            await MediaStore(client=client).fetch("https://cdn.example/img.jpg")

    async def test_publish_to_local_storage(self, tmp_path):
        url = await MediaStore(LocalStorage(str(tmp_path))).publish(PNG, "user-1")

        assert url.endswith(".png")
        assert "/media/user-1/tryon/" in url
        stored = list((tmp_path / "user-1" / "tryon").iterdir())
        assert stored[0].read_bytes() == PNG
