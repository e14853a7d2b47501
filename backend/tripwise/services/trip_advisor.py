"""Trip advisor — LLM-written trade-off explanations, weather tips and activity ideas."""

import logging
import re
from datetime import date

from tripwise.data.currency import format_price
from tripwise.services.cache_service import cache_service
from tripwise.services.llm_client import llm_client

logger = logging.getLogger(__name__)

EXPLAIN_SYSTEM_PROMPT = (
    "You are an expert travel planning advisor who explains optimization decisions "
    "clearly and concisely."
)

WEATHER_SYSTEM_PROMPT = "You are a travel advisor providing practical, location-specific advice."

SUGGEST_SYSTEM_PROMPT = "You are a local travel expert. Return only valid JSON, no additional text."

FALLBACK_TIPS = ["Pack appropriate clothing", "Check local customs", "Stay hydrated"]

_BULLET = re.compile(r"^\s*(?:[-•*]|\d+\.)\s*")
_WEATHER = re.compile(r"WEATHER:\s*(.*?)(?=TIPS:|$)", re.S)


def _bullets(text: str) -> list[str]:
    lines = []
    for line in text.split("\n"):
        if not _BULLET.match(line):
            continue
        cleaned = _BULLET.sub("", line).strip()
        if cleaned:
            lines.append(cleaned)
    return lines


class TripAdvisor:
    """Presentational advice; every method falls back to static text on failure."""

    async def explain(
        self,
        origin: str,
        destination: str,
        segments: list[dict],
        prefs: dict,
        currency: str = "INR",
    ) -> list[str]:
        prompt = self._build_explain_prompt(origin, destination, segments, prefs, currency)
        try:
            text = await llm_client.complete(EXPLAIN_SYSTEM_PROMPT, prompt)
            points = _bullets(text)
            if points:
                return points
            logger.warning("Trade-off explanation had no bullet points, using fallback")
        except Exception as e:
            logger.error(f"LLM failed for trade-off explanation: {e}")
        return self._fallback_explanation(segments, prefs, currency)

    async def weather_and_tips(self, destination: str, start: date, end: date) -> dict:
        cached = await cache_service.get_weather(destination, start, end)
        if cached:
            return cached

        prompt = f"""Provide travel information for {destination} from {start.isoformat()} to {end.isoformat()}:

1. Expected weather conditions and temperature range
2. What to pack (clothing recommendations)
3. Best practices for that time of year
4. Any festivals, events, or seasonal highlights
5. Health and safety considerations

Format as:
WEATHER: (2-3 sentences)

TIPS:
- Tip 1
- Tip 2
- Tip 3
(etc)"""

        try:
            text = await llm_client.complete(WEATHER_SYSTEM_PROMPT, prompt)
        except Exception as e:
            logger.error(f"LLM failed for weather tips: {e}")
            return {
                "weather": "Weather information unavailable",
                "tips": ["Check weather forecast before departure"],
            }

        match = _WEATHER.search(text)
        weather = match.group(1).strip() if match else text.split("\n\n")[0].strip()
        tips = _bullets(text.split("TIPS:", 1)[-1])
        info = {
            "weather": weather or "Weather information not available",
            "tips": tips or list(FALLBACK_TIPS),
        }
        await cache_service.set_weather(destination, start, end, info)
        return info

    async def suggest_activities(
        self,
        destination: str,
        day: date,
        interests: list[str],
        budget: float,
        currency: str = "INR",
    ) -> list[dict]:
        interests_str = ", ".join(interests) if interests else "general sightseeing"
        prompt = f"""Suggest 6 diverse activities for a traveler visiting {destination} on {day.isoformat()}.

Traveler interests: {interests_str}
Budget per activity: Up to {format_price(budget, currency)}

For each activity, provide:
- title (short, catchy name)
- description (2-3 sentences about what makes it special)
- price in {currency}
- duration_min
- comfort_score (1-10, where 10 is most comfortable)
- category (e.g., culture, adventure, food, nature, relaxation)

Return ONLY a valid JSON array with these 6 activities."""

        try:
            return await llm_client.complete_json_list(SUGGEST_SYSTEM_PROMPT, prompt)
        except Exception as e:
            logger.error(f"LLM failed for activity suggestions: {e}")
            return []

    def _build_explain_prompt(self, origin, destination, segments, prefs, currency) -> str:
        segments_text = "\n".join(
            f"{s['category']}: {s['provider']} ({format_price(s['price'], currency)}, "
            f"{round(s['duration_min'] / 60)}h, comfort: {s['comfort_score']}/10)"
            for s in segments
        )
        prefs_text = (
            f"Cost priority: {round(prefs['weight_cost'] * 100)}%, "
            f"Time priority: {round(prefs['weight_time'] * 100)}%, "
            f"Comfort priority: {round(prefs['weight_comfort'] * 100)}%"
        )
        return f"""Analyze this trip itinerary and explain the trade-offs made in the optimization.

Trip: {origin} to {destination}

Selected segments:
{segments_text}

User preferences:
{prefs_text}

Provide 4-5 concise bullet points (2-3 sentences each) explaining:
1. Why each segment was selected based on the user's priorities
2. What trade-offs were made (e.g., saved money by adding time)
3. How the choices align with the preference weights
4. Any notable balance achieved between competing factors

Be specific and refer to actual numbers."""

    def _fallback_explanation(self, segments, prefs, currency) -> list[str]:
        if not segments:
            return ["No segments have been planned yet."]
        total = sum(s["price"] for s in segments)
        top = max(
            ("cost", prefs["weight_cost"]),
            ("time", prefs["weight_time"]),
            ("comfort", prefs["weight_comfort"]),
            key=lambda kv: kv[1],
        )[0]
        return [
            f"The plan totals {format_price(total, currency)} across {len(segments)} segments.",
            f"Selections favour {top}, your highest-weighted priority.",
        ]


trip_advisor = TripAdvisor()
