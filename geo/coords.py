from __future__ import annotations

import re
from types import MappingProxyType


_NAME_CLEAN_RE = re.compile(r"[^\w\s,]+", flags=re.UNICODE)
_WS_RE = re.compile(r"\s+")


CITY_COORDS = MappingProxyType(
    {
        # Sweden
        "Stockholm, Sweden": (59.3293, 18.0686),
        "Gothenburg, Sweden": (57.7089, 11.9746),
        "Göteborg, Sweden": (57.7089, 11.9746),
        "Malmö, Sweden": (55.60498, 13.00382),
        "Uppsala, Sweden": (59.8586, 17.6389),
        "Västerås, Sweden": (59.6099, 16.5448),
        "Örebro, Sweden": (59.2753, 15.2134),
        "Linköping, Sweden": (58.4108, 15.6214),
        "Helsingborg, Sweden": (56.0465, 12.6945),
        "Lund, Sweden": (55.7047, 13.1910),
        "Umeå, Sweden": (63.8258, 20.2630),
        "Luleå, Sweden": (65.5848, 22.1547),
        "Gävle, Sweden": (60.6749, 17.1413),
        "Jönköping, Sweden": (57.7815, 14.1562),
        "Karlstad, Sweden": (59.3793, 13.5036),
        "Sundsvall, Sweden": (62.3908, 17.3069),
        "Eskilstuna, Sweden": (59.3712, 16.5098),
        "Norrköping, Sweden": (58.5877, 16.1924),
        "Borås, Sweden": (57.7210, 12.9401),
        # Norway
        "Oslo, Norway": (59.9139, 10.7522),
        "Bergen, Norway": (60.3913, 5.3221),
        "Trondheim, Norway": (63.4305, 10.3951),
        "Stavanger, Norway": (58.9690, 5.7331),
        "Tromsø, Norway": (69.6492, 18.9553),
        "Kristiansand, Norway": (58.1467, 7.9956),
        "Drammen, Norway": (59.7439, 10.2045),
        "Fredrikstad, Norway": (59.2181, 10.9298),
        "Bodø, Norway": (67.2804, 14.4049),
        "Ålesund, Norway": (62.4722, 6.1549),
        "Sandnes, Norway": (58.8524, 5.7352),
        "Narvik, Norway": (68.4385, 17.4273),
        # Denmark / Finland
        "Copenhagen, Denmark": (55.6761, 12.5683),
        "Aarhus, Denmark": (56.1629, 10.2039),
        "Helsinki, Finland": (60.1699, 24.9384),
        "Tampere, Finland": (61.4978, 23.7610),
        # India
        "Mumbai, India": (19.0760, 72.8777),
        "Delhi, India": (28.7041, 77.1025),
        "New Delhi, India": (28.6139, 77.2090),
        "Bengaluru, India": (12.9716, 77.5946),
        "Bangalore, India": (12.9716, 77.5946),
        "Chennai, India": (13.0827, 80.2707),
        "Kolkata, India": (22.5726, 88.3639),
        "Hyderabad, India": (17.3850, 78.4867),
        "Pune, India": (18.5204, 73.8567),
        "Jaipur, India": (26.9124, 75.7873),
    }
)

COUNTRY_COORDS = MappingProxyType(
    {
        "Sweden": (62.0, 15.0),
        "Norway": (64.5, 11.0),
        "Denmark": (56.0, 10.0),
        "Finland": (64.0, 26.0),
        "Iceland": (64.9, -18.6),
        "India": (22.0, 79.0),
    }
)


def normalize_place_key(name: str) -> str:
    cleaned = _NAME_CLEAN_RE.sub(" ", name.strip().casefold())
    cleaned = _WS_RE.sub(" ", cleaned).strip()
    return cleaned.replace(" ,", ",")


_CITY_BY_NORMALIZED_KEY = MappingProxyType(
    {normalize_place_key(key): coords for key, coords in CITY_COORDS.items()}
)


def resolve_coords(
    city: str | None, country: str | None
) -> tuple[float, float] | None:
    city = (city or "").strip()
    country = (country or "").strip()

    if city and country:
        key = f"{city}, {country}"
        coords = CITY_COORDS.get(key)
        if coords is None:
            coords = _CITY_BY_NORMALIZED_KEY.get(normalize_place_key(key))
        if coords is not None:
            return coords

    if country:
        return COUNTRY_COORDS.get(country)
    return None
