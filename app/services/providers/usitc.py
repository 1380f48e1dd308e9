from __future__ import annotations

import re
from decimal import Decimal

from app.core.config import get_settings
from app.core.logging import get_logger
from app.repositories.duty_override_repo import DutyRateOverrideRepository
from app.services.providers.base import redis_get_json, redis_set_json
from app.services.providers.http_client import CircuitBreaker, ProviderPolicy, get_json
from app.services.providers.types import DutyRateResult

TTL_SECONDS = 86400
_policy = ProviderPolicy(breaker=CircuitBreaker())
logger = get_logger()

PERCENT_PATTERN = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*%")


def normalize_hs_code(hs_code: str) -> str:
    return re.sub(r"[^0-9]", "", hs_code or "")


def parse_general_rate(text: str | None) -> Decimal | None:
    """Free -> 0, 8.7% -> 0.087; specific-only rates such as 2.4¢/kg have no ad valorem part."""
    if text is None:
        return None
    cleaned = text.strip()
    if not cleaned:
        return None
    if cleaned.lower().startswith("free"):
        return Decimal("0")
    match = PERCENT_PATTERN.search(cleaned)
    if not match:
        return None
    return Decimal(match.group(1)) / Decimal("100")


class UsitcDutySource:
    """US Harmonized Tariff Schedule general (MFN) rates with an admin override table behind it."""

    country = "US"

    def __init__(self, session, policy: ProviderPolicy | None = None) -> None:
        self.settings = get_settings()
        self.policy = policy or _policy
        self.override_repo = DutyRateOverrideRepository(session)

    async def get_duty_rate(self, hs_code: str) -> DutyRateResult:
        code = normalize_hs_code(hs_code)
        cache_key = f"usitc:{code}"
        cached = await redis_get_json(cache_key)
        if cached:
            rate = self._extract_rate(cached, code)
            return DutyRateResult(rate=rate, source="redis", is_estimated=False, missing=rate is None)

        if not self.policy.breaker.allow():
            return await self._fallback(code)

        url = f"{self.settings.usitc_api_base}/search"
        try:
            payload = await get_json(url, params={"keyword": code}, policy=self.policy)
            self.policy.breaker.record_success()
        except Exception as exc:
            self.policy.breaker.record_failure()
            logger.warning("usitc_lookup_failed", hs_code=code, error=str(exc))
            return await self._fallback(code)

        rate = self._extract_rate(payload, code)
        if rate is None:
            return await self._fallback(code)
        await redis_set_json(cache_key, payload, TTL_SECONDS)
        return DutyRateResult(rate=rate, source="usitc", is_estimated=False, missing=False, raw_payload={"results": payload})

    async def _fallback(self, code: str) -> DutyRateResult:
        override = await self.override_repo.get_rate(self.country, code)
        if not override:
            return DutyRateResult(rate=None, source="override_missing", is_estimated=True, missing=True)
        return DutyRateResult(rate=Decimal(override.duty_rate), source="override", is_estimated=True, missing=False)

    def _extract_rate(self, payload, code: str) -> Decimal | None:
        # The search returns every heading that matches the keyword; the longest
        # tariff number that is a prefix of the requested code wins.
        if not isinstance(payload, list):
            return None
        best: tuple[int, Decimal] | None = None
        for row in payload:
            if not isinstance(row, dict):
                continue
            htsno = normalize_hs_code(row.get("htsno") or "")
            if not htsno or not (code.startswith(htsno) or htsno.startswith(code)):
                continue
            rate = parse_general_rate(row.get("general"))
            if rate is None:
                continue
            score = len(htsno) if code.startswith(htsno) else len(code)
            if best is None or score > best[0]:
                best = (score, rate)
        return best[1] if best else None
