"""Marketing copy for catalog products.

The generator renders a copywriter prompt from a product's attributes and
expects a JSON object back; both sides of the exchange are pydantic models so
a malformed reply fails loudly. Callers go through ``DescriptionService``,
which swallows generator failures and substitutes a fixed template so a page
always has something to show.
"""
import asyncio
import logging
import re
import time
from typing import Callable, Iterable, Optional

from pydantic import BaseModel, Field

from ac_store.catalog import Product
from ac_store.llm import LLMProvider

log = logging.getLogger("shop.enrichment")

DESCRIPTION_TTL = 3600  # seconds

FALLBACK_TEMPLATE = (
    "Key features: {features}. Capacity: {capacity}. Condition: {condition}. "
    "Reliable and efficient cooling for your comfort."
)
# the products grid uses the shorter closing line
LISTING_FALLBACK_TEMPLATE = (
    "Key features: {features}. Capacity: {capacity}. Condition: {condition}. "
    "Reliable and efficient cooling."
)

SYSTEM_PROMPT = (
    "You are an expert copywriter specializing in writing compelling and "
    "SEO-optimized product descriptions for AC units."
)

PROMPT_TEMPLATE = """Generate a product description for the following AC unit, focusing on its key features and benefits. Optimize the description for search engines by including relevant keywords.

Brand: {brand}
Model: {model}
Capacity: {capacity}
Features: {features}
Condition: {condition}

Reply with a JSON object of the form {{"description": "..."}} and nothing else."""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class DescriptionRequest(BaseModel):
    brand: str = Field(description="The brand of the AC unit.")
    model: str = Field(description="The model of the AC unit.")
    capacity: str = Field(description="The cooling capacity of the AC unit (e.g., 1.5 Ton).")
    features: str = Field(description="Key features of the AC unit, separated by commas.")
    condition: str = Field(description="The condition of the AC unit (e.g., New, Used).")

    @classmethod
    def for_product(cls, product: Product) -> "DescriptionRequest":
        return cls(
            brand=product.brand,
            model=product.model,
            capacity=product.capacity,
            features=product.features,
            condition=str(product.condition),
        )


class DescriptionResponse(BaseModel):
    description: str = Field(min_length=1, description="The generated product description for the AC unit.")


def render_prompt(request: DescriptionRequest) -> str:
    return PROMPT_TEMPLATE.format(**request.model_dump())


def parse_reply(content: str) -> DescriptionResponse:
    """Validate a raw model reply, tolerating a markdown code fence around it."""
    return DescriptionResponse.model_validate_json(_FENCE.sub("", content.strip()))


async def generate_product_description(
    request: DescriptionRequest,
    provider: Optional[LLMProvider],
) -> DescriptionResponse:
    if provider is None:
        raise RuntimeError("no description provider configured")
    reply = await provider.run(render_prompt(request), system=SYSTEM_PROMPT, json_mode=True)
    return parse_reply(reply.content)


def fallback_description(product: Product, listing: bool = False) -> str:
    template = LISTING_FALLBACK_TEMPLATE if listing else FALLBACK_TEMPLATE
    return template.format(
        features=product.features,
        capacity=product.capacity,
        condition=str(product.condition),
    )


class DescriptionService:
    """Attaches descriptions to products, caching generated copy per product id."""

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        ttl: float = DESCRIPTION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self._ttl = ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, str]] = {}

    def _cached(self, product_id: str) -> Optional[str]:
        hit = self._cache.get(product_id)
        if hit is None:
            return None
        expires, text = hit
        if self._clock() >= expires:
            del self._cache[product_id]
            return None
        return text

    async def describe(self, product: Product, listing: bool = False) -> Product:
        text = self._cached(product.id)
        if text is not None:
            return product.with_description(text)
        try:
            response = await generate_product_description(DescriptionRequest.for_product(product), self.provider)
        except Exception as e:
            log.warning(f"Failed to generate description for {product.title}: {e}")
            return product.with_description(fallback_description(product, listing=listing))
        self._cache[product.id] = (self._clock() + self._ttl, response.description)
        return product.with_description(response.description)

    async def describe_all(self, products: Iterable[Product]) -> list[Product]:
        return list(await asyncio.gather(*(self.describe(p, listing=True) for p in products)))

    def clear(self) -> None:
        self._cache.clear()
