# airlines.py

# =====================================================================
# SECTION START: AIRLINE NAMES
# IATA code -> human-readable airline name
# Used by the price drop email when a flight only stores a carrier code.
# =====================================================================

AIRLINE_NAMES = {
    # North America
    "AA": "American Airlines",
    "DL": "Delta Air Lines",
    "UA": "United Airlines",
    "WN": "Southwest Airlines",
    "AS": "Alaska Airlines",
    "B6": "JetBlue",
    "NK": "Spirit Airlines",
    "F9": "Frontier Airlines",
    "HA": "Hawaiian Airlines",
    "AC": "Air Canada",
    "WS": "WestJet",
    "AM": "Aeromexico",
    # Europe
    "BA": "British Airways",
    "VS": "Virgin Atlantic",
    "LH": "Lufthansa",
    "AF": "Air France",
    "KL": "KLM",
    "IB": "Iberia",
    "LX": "Swiss",
    "TK": "Turkish Airlines",
    "EI": "Aer Lingus",
    # Middle East / Asia
    "EK": "Emirates",
    "QR": "Qatar Airways",
    "EY": "Etihad Airways",
    "SQ": "Singapore Airlines",
    "CX": "Cathay Pacific",
    "NH": "ANA",
    "JL": "Japan Airlines",
}

# =====================================================================
# SECTION END: AIRLINE NAMES
# =====================================================================


def airline_display_name(value) -> str:
    """Full name for a 2-letter code, the input itself for anything else."""
    if not value:
        return "Your airline"
    raw = str(value).strip()
    return AIRLINE_NAMES.get(raw.upper(), raw)
