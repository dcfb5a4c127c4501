"""
services/fare_lookup.py

Current fare for a tracked flight:
- select_best_offer: airline filter, then closest departure time, else cheapest
- FareLookup: one Amadeus search per flight, sized to what the selection needs
"""

import logging
from datetime import datetime, time
from typing import List, Optional, Sequence

from config import FARE_SEARCH_MAX_CANDIDATES, FARE_SEARCH_MIN_CANDIDATES
from providers.amadeus import AmadeusClient
from schemas.fares import FareLookupRequest, FareOffer, FareQuote

logger = logging.getLogger(__name__)


# =====================================================================
# SECTION: BEST OFFER SELECTION
# =====================================================================

def _minutes_of_day(value) -> int:
    return value.hour * 60 + value.minute


def departure_gap_minutes(offer: FareOffer, preferred_time: time) -> int:
    """Absolute distance between the first leg's departure time of day and the preferred time."""
    return abs(_minutes_of_day(offer.first_departure) - _minutes_of_day(preferred_time))


def filter_by_airline(offers: Sequence[FareOffer], airline: str) -> List[FareOffer]:
    """Offers where every leg is flown by the given carrier."""
    return [o for o in offers if o.operated_only_by(airline)]


def select_best_offer(
    offers: Sequence[FareOffer],
    airline: Optional[str] = None,
    preferred_time: Optional[time] = None,
) -> Optional[FareOffer]:
    candidates = list(offers)

    if airline:
        candidates = filter_by_airline(candidates, airline)
        if not candidates:
            # The carrier was absent from this sample; we do not widen the search
            return None

    if not candidates:
        return None

    if preferred_time is not None:
        # min() keeps the first of equal keys, so list order breaks ties
        return min(candidates, key=lambda o: departure_gap_minutes(o, preferred_time))

    return candidates[0]


# =====================================================================
# SECTION: LOOKUP
# =====================================================================

class FareLookup:
    def __init__(
        self,
        client: Optional[AmadeusClient] = None,
        max_candidates: int = FARE_SEARCH_MAX_CANDIDATES,
        min_candidates: int = FARE_SEARCH_MIN_CANDIDATES,
    ) -> None:
        self.client = client or AmadeusClient()
        self.max_candidates = max(1, int(max_candidates))
        self.min_candidates = max(1, int(min_candidates))

    def candidate_count(self, request: FareLookupRequest) -> int:
        if request.preferred_departure_time is not None:
            return self.max_candidates
        return self.min_candidates

    def lookup(self, request: FareLookupRequest) -> Optional[FareQuote]:
        """
        Best matching current fare, or None when nothing matches.

        Raises LookupTransportError for auth/network/provider failures.
        """
        offers = self.client.search_offers(request, max_results=self.candidate_count(request))
        best = select_best_offer(
            offers,
            airline=request.airline,
            preferred_time=request.preferred_departure_time,
        )
        if best is None:
            logger.info(
                "[fare_lookup] no match %s-%s %s airline=%s offers=%d",
                request.departure_airport,
                request.arrival_airport,
                request.departure_date,
                request.airline,
                len(offers),
            )
            return None

        return FareQuote(
            current_price=best.total_price,
            currency=best.currency,
            checked_at=datetime.utcnow(),
        )
