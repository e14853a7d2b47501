"""Quote sourcing — fetches raw candidate offers per category, in parallel."""

import asyncio
import hashlib
import logging
import random
from dataclasses import dataclass, field
from datetime import date

from tripwise.config import settings
from tripwise.data.currency import convert
from tripwise.exceptions import SourcingUnavailable
from tripwise.services.cache_service import cache_service
from tripwise.services.llm_client import llm_client

logger = logging.getLogger(__name__)

SOURCED_CATEGORIES = ("transport", "stay", "activity")

# Demo catalogue, priced in INR: (title, provider, price, duration_min, comfort, attributes)
TRANSPORT_OPTIONS = [
    ("IndiGo Economy Flight", "IndiGo", 6500, 150, 6, {"class": "Economy", "mode": "flight"}),
    ("Vistara Premium Economy", "Vistara", 11000, 150, 8, {"class": "Premium Economy", "mode": "flight"}),
    ("Air India Business", "Air India", 24000, 150, 9, {"class": "Business", "mode": "flight"}),
    ("Rajdhani Express 2A", "Indian Railways", 3800, 960, 7, {"class": "2A", "mode": "train"}),
    ("Shatabdi Chair Car", "Indian Railways", 1800, 720, 5, {"class": "CC", "mode": "train"}),
    ("Volvo Sleeper Bus", "RedBus", 1400, 900, 4, {"class": "Sleeper", "mode": "bus"}),
]

# (title, provider, nightly price, comfort, attributes)
STAY_OPTIONS = [
    ("Grand Palace Hotel", "Luxury Hotel", 12000, 9, {"rating": "5-star", "breakfast": True}),
    ("City Centre Suites", "Business Hotel", 6500, 8, {"rating": "4-star", "breakfast": True}),
    ("Comfort Inn", "Mid-range Hotel", 3500, 7, {"rating": "3-star", "breakfast": False}),
    ("Heritage Homestay", "Homestay", 2500, 6, {"rating": "homestay", "breakfast": True}),
    ("Backpackers Hostel", "Budget Hostel", 900, 4, {"rating": "hostel", "breakfast": False}),
]

ACTIVITY_OPTIONS = [
    ("Old Town Guided Walk", "Local Guides Co.", 2500, 240, 7, {"type": "Guided Tour"}),
    ("River Rafting Adventure", "Outdoor Thrills", 4500, 300, 5, {"type": "Adventure"}),
    ("Classical Dance Evening", "Cultural Centre", 1500, 180, 8, {"type": "Cultural"}),
    ("Street Food Trail", "Taste Walks", 2000, 180, 7, {"type": "Food Tour"}),
    ("City Museum Pass", "Museum Board", 600, 120, 9, {"type": "Museum"}),
    ("Sunrise Nature Excursion", "Green Trails", 3000, 360, 6, {"type": "Nature"}),
]

QUOTE_SYSTEM_PROMPT = "You are a travel booking expert. Return only valid JSON, no additional text."

QUOTE_FORMAT = """For each option, provide:
- title: Short name
- provider: Company or category name
- price: Realistic total price in {currency}
- duration_min: {duration_hint}
- comfort_score: Rating 1-10
- options: Object with extra details

Return ONLY a valid JSON array. Format:
[
  {{"title": "Option Name", "provider": "Provider Name", "price": 5000, "duration_min": 150, "comfort_score": 8, "options": {{}}}}
]"""


@dataclass
class TripContext:
    trip_id: str
    origin: str
    destination: str
    start_date: date
    end_date: date
    currency: str = "INR"
    total_budget: float = 0.0
    caps: dict[str, float] = field(default_factory=dict)

    @property
    def nights(self) -> int:
        return max(1, (self.end_date - self.start_date).days)

    def budget_hint(self, category: str) -> float:
        return self.caps.get(category) or self.total_budget


class DemoQuoteProvider:
    """Deterministic catalogue-based offers, seeded by route and dates."""

    name = "demo"

    async def fetch(self, ctx: TripContext, category: str) -> list[dict]:
        seed_str = f"{category}_{ctx.origin}_{ctx.destination}_{ctx.start_date.isoformat()}_{ctx.end_date.isoformat()}"
        seed = int(hashlib.md5(seed_str.encode()).hexdigest()[:8], 16)
        rng = random.Random(seed)

        offers = []
        if category == "transport":
            for title, provider, price, duration, comfort, attrs in TRANSPORT_OPTIONS:
                offers.append(self._offer(
                    ctx, rng, title, provider, price * rng.uniform(0.85, 1.25),
                    round(duration * rng.uniform(0.9, 1.2)), comfort, attrs,
                ))
        elif category == "stay":
            for title, provider, nightly, comfort, attrs in STAY_OPTIONS:
                offers.append(self._offer(
                    ctx, rng, f"{title} {ctx.destination}", provider,
                    nightly * ctx.nights * rng.uniform(0.85, 1.25),
                    ctx.nights * 1440, comfort, {**attrs, "nights": ctx.nights},
                ))
        elif category == "activity":
            for title, provider, price, duration, comfort, attrs in ACTIVITY_OPTIONS:
                offers.append(self._offer(
                    ctx, rng, f"{title} ({ctx.destination})", provider,
                    price * rng.uniform(0.8, 1.3), duration, comfort, attrs,
                ))
        return offers

    @staticmethod
    def _offer(ctx, rng, title, provider, price_inr, duration, comfort, attrs) -> dict:
        return {
            "title": title,
            "provider": provider,
            "price": round(convert(price_inr, "INR", ctx.currency), 2),
            "currency": ctx.currency,
            "duration_min": duration,
            "comfort_score": min(10, max(0, comfort + rng.choice([-1, 0, 0, 1]))),
            "options": dict(attrs),
        }


class LLMQuoteProvider:
    """Offers generated by the LLM from a route, dates and budget."""

    name = "llm"

    async def fetch(self, ctx: TripContext, category: str) -> list[dict]:
        prompt = self._build_prompt(ctx, category)
        offers = await llm_client.complete_json_list(QUOTE_SYSTEM_PROMPT, prompt)
        for offer in offers:
            offer.setdefault("currency", ctx.currency)
        return offers

    def _build_prompt(self, ctx: TripContext, category: str) -> str:
        count = settings.candidates_per_category
        budget = f"{ctx.currency} {ctx.budget_hint(category):,.0f}"

        if category == "transport":
            intro = (
                f"Generate {count} realistic transportation options from {ctx.origin} to "
                f"{ctx.destination} for {ctx.start_date.isoformat()}.\n\nBudget consideration: {budget}\n\n"
                "Provide diverse options including flights, trains and buses."
            )
            duration_hint = "Travel time in minutes"
        elif category == "stay":
            intro = (
                f"Generate {count} realistic accommodation options in {ctx.destination} from "
                f"{ctx.start_date.isoformat()} to {ctx.end_date.isoformat()} ({ctx.nights} nights).\n\n"
                f"Budget consideration: {budget}\n\n"
                "Provide diverse options including luxury, mid-range and budget hotels and homestays."
            )
            duration_hint = f"{ctx.nights * 1440} (total minutes of the stay)"
        else:
            intro = (
                f"Generate {count} realistic activity options in {ctx.destination} for the days "
                f"after {ctx.start_date.isoformat()}.\n\nBudget consideration: {budget}\n\n"
                "Provide diverse options: guided tours, adventure, culture, food, museums, nature."
            )
            duration_hint = "Activity duration in minutes"

        return intro + "\n\n" + QUOTE_FORMAT.format(currency=ctx.currency, duration_hint=duration_hint)


def clean_offer(raw: dict, default_currency: str) -> dict | None:
    """Coerce a raw offer into the quote shape, or None when it is unusable."""
    try:
        price = float(raw["price"])
        duration = int(round(float(raw.get("duration_min", 0))))
        comfort = float(raw.get("comfort_score", 5))
    except (KeyError, TypeError, ValueError):
        return None
    if price < 0 or duration < 0:
        return None

    title = str(raw.get("title") or raw.get("provider") or "Unnamed option")
    return {
        "title": title,
        "source": str(raw.get("provider") or title),
        "price": round(price, 2),
        "currency": str(raw.get("currency") or default_currency).upper()[:3],
        "duration_min": duration,
        "comfort_score": min(10.0, max(0.0, comfort)),
        "attributes": raw.get("options") if isinstance(raw.get("options"), dict) else {},
    }


class QuoteSourcingService:
    """Fetches candidate offers per category from the configured provider."""

    def __init__(self, provider=None):
        self._provider = provider

    @property
    def provider(self):
        if self._provider is not None:
            return self._provider
        choice = settings.quote_provider
        if choice == "llm" or (choice == "auto" and settings.llm_configured):
            return LLMQuoteProvider()
        return DemoQuoteProvider()

    async def fetch_candidates(self, ctx: TripContext, category: str) -> list[dict]:
        """Cleaned offers for one category. Raises SourcingUnavailable when there are none."""
        provider = self.provider
        key = cache_service.candidates_key(
            provider.name, category, ctx.origin, ctx.destination, ctx.start_date, ctx.end_date
        )

        cached = await cache_service.get_candidates(key)
        if cached:
            logger.info(f"Cache hit: {len(cached)} {category} candidates for {ctx.destination}")
            return cached

        try:
            raw_offers = await provider.fetch(ctx, category)
        except Exception as e:
            logger.warning(f"{provider.name} provider failed for {category}: {e}")
            raise SourcingUnavailable(category, str(e)) from e

        offers = [o for o in (clean_offer(r, ctx.currency) for r in raw_offers) if o]
        if not offers:
            raise SourcingUnavailable(category, f"{provider.name} provider returned no usable offers")

        await cache_service.set_candidates(key, offers)
        return offers

    async def fetch_all(
        self, ctx: TripContext, categories: list[str]
    ) -> tuple[dict[str, list[dict]], dict[str, str]]:
        """Fan out one fetch per category and join; failures are reported, not raised."""
        results = await asyncio.gather(
            *(self.fetch_candidates(ctx, c) for c in categories),
            return_exceptions=True,
        )

        offers: dict[str, list[dict]] = {}
        errors: dict[str, str] = {}
        for category, result in zip(categories, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, SourcingUnavailable):
                errors[category] = result.detail
            elif isinstance(result, Exception):
                logger.warning(f"Sourcing task failed for {category}: {result}")
                errors[category] = str(result)
            else:
                offers[category] = result
        return offers, errors


quote_sourcing_service = QuoteSourcingService()
