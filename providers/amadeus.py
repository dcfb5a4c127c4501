"""
providers/amadeus.py

Amadeus Self-Service API helpers:
- TokenCache: OAuth client-credential token held until shortly before expiry
- AmadeusClient: token issuance and flight-offers search over plain HTTP
- Offer-to-FareOffer mapping

Amadeus answers 400 when a route/date has nothing to sell. That is a normal
"no offers" outcome, not a transport failure.
"""

import logging
import time
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

import requests

from config import (
    AMADEUS_API_BASE,
    AMADEUS_CLIENT_ID,
    AMADEUS_CLIENT_SECRET,
    AMADEUS_TIMEOUT_SECONDS,
    AMADEUS_TOKEN_EXPIRY_MARGIN_SECONDS,
)
from errors import AmadeusAuthError, LookupTransportError
from schemas.fares import FareLeg, FareLookupRequest, FareOffer

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1/security/oauth2/token"
FLIGHT_OFFERS_PATH = "/v2/shopping/flight-offers"

# Amadeus uses 400 for "no flights match"; 404 shows up for unknown locations
NO_RESULTS_STATUSES = {400, 404}

TRAVEL_CLASSES = {"ECONOMY", "PREMIUM_ECONOMY", "BUSINESS", "FIRST"}


# =====================================================================
# SECTION: TOKEN CACHE
# =====================================================================

class TokenCache:
    """
    Bearer token plus the clock time after which it must be refreshed.

    Two callers hitting an expired token at once will both refresh; the last
    store wins and both tokens are valid, so no lock is taken.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        margin_seconds: float = AMADEUS_TOKEN_EXPIRY_MARGIN_SECONDS,
    ) -> None:
        self._clock = clock
        self._margin = margin_seconds
        self.token: Optional[str] = None
        self.expires_at: float = 0.0

    def get(self) -> Optional[str]:
        if self.token and self._clock() < self.expires_at:
            return self.token
        return None

    def store(self, token: str, expires_in: float) -> str:
        self.token = token
        self.expires_at = self._clock() + float(expires_in) - self._margin
        return token

    def clear(self) -> None:
        self.token = None
        self.expires_at = 0.0


# =====================================================================
# SECTION: OFFER MAPPING
# =====================================================================

def _parse_departure(raw: Optional[str]) -> datetime:
    if not raw:
        raise ValueError("segment has no departure time")
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


def map_amadeus_offer(offer: Dict[str, Any]) -> FareOffer:
    """
    PRICE CONTRACT:
    - price.grandTotal (falls back to price.total) is the TOTAL for all travellers
    - we always search with adults=1, so total == per passenger
    """
    legs: List[FareLeg] = []
    for itinerary in offer.get("itineraries") or []:
        for seg in itinerary.get("segments") or []:
            carrier = seg.get("carrierCode") or (seg.get("operating") or {}).get("carrierCode")
            if not carrier:
                raise ValueError("segment has no carrierCode")
            departure = seg.get("departure") or {}
            legs.append(FareLeg(carrier_code=carrier, departing_at=_parse_departure(departure.get("at"))))

    price = offer.get("price") or {}
    raw_total = price.get("grandTotal") or price.get("total")
    if raw_total is None:
        raise ValueError("offer has no price")
    try:
        total = Decimal(str(raw_total))
    except InvalidOperation:
        raise ValueError(f"offer price is not a number: {raw_total!r}")

    return FareOffer(
        id=offer.get("id"),
        legs=legs,
        total_price=total,
        currency=price.get("currency") or "USD",
    )


def map_amadeus_offers(payload: Dict[str, Any]) -> List[FareOffer]:
    offers: List[FareOffer] = []
    for raw in payload.get("data") or []:
        if not isinstance(raw, dict):
            logger.warning("[amadeus] skipping non-object offer entry: %r", raw)
            continue
        try:
            offers.append(map_amadeus_offer(raw))
        except (ValueError, TypeError) as e:
            logger.warning("[amadeus] skipping malformed offer id=%s: %s", raw.get("id"), e)
    return offers


# =====================================================================
# SECTION: CLIENT
# =====================================================================

class AmadeusClient:
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: str = AMADEUS_API_BASE,
        token_cache: Optional[TokenCache] = None,
        timeout: float = AMADEUS_TIMEOUT_SECONDS,
        http: Any = requests,
    ) -> None:
        self.client_id = client_id if client_id is not None else AMADEUS_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else AMADEUS_CLIENT_SECRET
        self.base_url = base_url.rstrip("/")
        self.token_cache = token_cache or TokenCache()
        self.timeout = timeout
        self.http = http

    # ---- auth ----

    def get_access_token(self) -> str:
        cached = self.token_cache.get()
        if cached:
            return cached

        if not self.client_id or not self.client_secret:
            raise AmadeusAuthError("Amadeus API credentials are not configured")

        logger.info("[amadeus] token missing or expired, requesting a new one")
        try:
            resp = self.http.post(
                self.base_url + TOKEN_PATH,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AmadeusAuthError(f"Amadeus token request failed: {e}")

        if resp.status_code >= 400:
            body = (resp.text or "")[:500]
            raise AmadeusAuthError(
                f"Amadeus token request rejected status={resp.status_code} body={body}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
            token = data["access_token"]
            expires_in = float(data.get("expires_in", 0))
        except (ValueError, KeyError, TypeError) as e:
            raise AmadeusAuthError(f"Amadeus token response unreadable: {e}")

        return self.token_cache.store(token, expires_in)

    # ---- search ----

    def build_search_params(self, request: FareLookupRequest, max_results: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "originLocationCode": request.departure_airport,
            "destinationLocationCode": request.arrival_airport,
            "departureDate": request.departure_date.isoformat(),
            "adults": 1,
            "currencyCode": request.currency,
            "max": int(max_results),
        }
        if request.return_date:
            params["returnDate"] = request.return_date.isoformat()
        if request.airline:
            params["includedAirlineCodes"] = request.airline
        travel_class = (request.travel_class or "").strip().upper().replace(" ", "_")
        if travel_class in TRAVEL_CLASSES:
            params["travelClass"] = travel_class
        return params

    def search_offers(self, request: FareLookupRequest, max_results: int = 1) -> List[FareOffer]:
        """Flight offers for a route/date, cheapest first as returned by Amadeus."""
        token = self.get_access_token()
        params = self.build_search_params(request, max_results)
        route = f"{request.departure_airport}-{request.arrival_airport} {request.departure_date}"

        try:
            resp = self.http.get(
                self.base_url + FLIGHT_OFFERS_PATH,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise LookupTransportError(f"Amadeus flight search failed for {route}: {e}")

        if resp.status_code in NO_RESULTS_STATUSES:
            logger.info("[amadeus] no offers for %s status=%s", route, resp.status_code)
            return []

        if resp.status_code == 401:
            # Token revoked early; force a fresh one next time round
            self.token_cache.clear()

        if resp.status_code >= 400:
            body = (resp.text or "").replace("\n", "\\n")[:1200]
            logger.warning("[amadeus] search %s status=%s body=%s", route, resp.status_code, body)
            raise LookupTransportError(
                f"Amadeus flight search failed for {route} status={resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise LookupTransportError(f"Amadeus flight search returned invalid JSON for {route}: {e}")

        offers = map_amadeus_offers(payload if isinstance(payload, dict) else {})
        logger.info("[amadeus] search %s max=%s offers=%d", route, params["max"], len(offers))
        return offers
