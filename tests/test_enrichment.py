import pytest

from ac_store.catalog import get_product
from ac_store.enrichment import (
    DescriptionRequest, DescriptionService, fallback_description, generate_product_description,
    parse_reply, render_prompt,
)


def test_fallback_text_for_product_one():
    assert fallback_description(get_product("1")) == (
        "Key features: Inverter Technology, Smart Controls, Air Purification. "
        "Capacity: 1.5 Ton. Condition: Used. Reliable and efficient cooling for your comfort."
    )


def test_listing_fallback_is_shorter():
    assert fallback_description(get_product("1"), listing=True) == (
        "Key features: Inverter Technology, Smart Controls, Air Purification. "
        "Capacity: 1.5 Ton. Condition: Used. Reliable and efficient cooling."
    )


def test_prompt_carries_product_attributes():
    prompt = render_prompt(DescriptionRequest.for_product(get_product("3")))
    assert "Brand: FrostFlow" in prompt
    assert "Capacity: 2.0 Ton" in prompt
    assert "Condition: New" in prompt
    assert '{"description": "..."}' in prompt


def test_parse_reply_strips_code_fence():
    assert parse_reply('```json\n{"description": "Cool."}\n```').description == "Cool."


def test_parse_reply_rejects_empty_description():
    with pytest.raises(ValueError):
        parse_reply('{"description": ""}')


async def test_generate_uses_json_mode(fake_provider):
    provider = fake_provider('{"description": "A quiet unit."}')
    resp = await generate_product_description(DescriptionRequest.for_product(get_product("2")), provider)
    assert resp.description == "A quiet unit."
    _, kwargs = provider.calls[0]
    assert kwargs["json_mode"] is True
    assert "copywriter" in kwargs["system"]


async def test_generate_without_provider_fails():
    with pytest.raises(RuntimeError):
        await generate_product_description(DescriptionRequest.for_product(get_product("2")), None)


class TestDescriptionService:
    async def test_no_provider_falls_back(self):
        p = await DescriptionService(None).describe(get_product("1"))
        assert p.description == fallback_description(get_product("1"))

    async def test_generated_copy_is_cached(self, fake_provider):
        provider = fake_provider('{"description": "Generated."}')
        svc = DescriptionService(provider)
        first = await svc.describe(get_product("1"))
        second = await svc.describe(get_product("1"))
        assert first.description == second.description == "Generated."
        assert len(provider.calls) == 1

    async def test_cache_expires(self, fake_provider):
        now = [0.0]
        provider = fake_provider('{"description": "Generated."}')
        svc = DescriptionService(provider, ttl=10, clock=lambda: now[0])
        await svc.describe(get_product("1"))
        now[0] = 11
        await svc.describe(get_product("1"))
        assert len(provider.calls) == 2

    async def test_invalid_reply_falls_back_and_is_not_cached(self, fake_provider):
        provider = fake_provider("not json", '{"description": "Second try."}')
        svc = DescriptionService(provider)
        first = await svc.describe(get_product("4"))
        assert first.description == fallback_description(get_product("4"))
        second = await svc.describe(get_product("4"))
        assert second.description == "Second try."

    async def test_provider_error_falls_back(self, fake_provider):
        svc = DescriptionService(fake_provider(ConnectionError("down")))
        p = await svc.describe(get_product("2"))
        assert p.description.startswith("Key features: Quiet Operation")

    async def test_describe_all_keeps_order(self):
        products = [get_product(i) for i in ("3", "1", "2")]
        described = await DescriptionService(None).describe_all(products)
        assert [p.id for p in described] == ["3", "1", "2"]
        assert all(p.description for p in described)

    async def test_describe_all_uses_listing_fallback(self):
        (p,) = await DescriptionService(None).describe_all([get_product("1")])
        assert p.description == fallback_description(get_product("1"), listing=True)
