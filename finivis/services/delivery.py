"""Doorstep delivery eligibility for currency exchange orders.

Delivery is offered only within a fixed radius of the Panchkula branch.
Distances are road kilometres for a curated list of cities; unknown cities
are not eligible (the customer is asked to pick from the list or contact
support).
"""

from __future__ import annotations
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

MAX_DELIVERY_RADIUS_KM = 150
OUT_OF_RADIUS_MESSAGE = (
    "Currency exchange delivery is currently available only within 150 km of Panchkula, Haryana."
)


@dataclass(frozen=True)
class City:
    name: str
    state: str
    distance_km: int

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Offered in the city picker
PREDEFINED_CITIES: List[City] = [
    City("Panchkula", "Haryana", 0),
    City("Chandigarh", "Chandigarh", 5),
    City("Mohali", "Punjab", 10),
    City("Zirakpur", "Punjab", 15),
    City("Derabassi", "Punjab", 25),
    City("Ambala", "Haryana", 45),
    City("Kurukshetra", "Haryana", 95),
    City("Yamunanagar", "Haryana", 65),
    City("Jagadhri", "Haryana", 60),
    City("Karnal", "Haryana", 120),
    City("Kaithal", "Haryana", 140),
    City("Pehowa", "Haryana", 110),
    City("Pinjore", "Haryana", 12),
    City("Kalka", "Haryana", 15),
    City("Nalagarh", "Himachal Pradesh", 35),
    City("Patiala", "Punjab", 70),
    City("Solan", "Himachal Pradesh", 50),
    City("Shimla", "Himachal Pradesh", 115),
    City("Dharampur", "Himachal Pradesh", 40),
    City("Kasauli", "Himachal Pradesh", 45),
]

# Accepted when typed, not listed
ADDITIONAL_VALID_CITIES: List[City] = [
    City("Baddi", "Himachal Pradesh", 30),
    City("Parwanoo", "Himachal Pradesh", 35),
    City("Rajpura", "Punjab", 40),
    City("Kharar", "Punjab", 15),
    City("Ropar", "Punjab", 45),
    City("Nangal", "Punjab", 80),
    City("Morinda", "Punjab", 50),
    City("Ludhiana", "Punjab", 100),
    City("Jalandhar", "Punjab", 145),
    City("Panipat", "Haryana", 140),
    City("Sonipat", "Haryana", 145),
    City("Rohtak", "Haryana", 145),
    City("Saharanpur", "Uttar Pradesh", 95),
    City("Meerut", "Uttar Pradesh", 140),
]

ALL_KNOWN_CITIES: List[City] = PREDEFINED_CITIES + ADDITIONAL_VALID_CITIES


@dataclass(frozen=True)
class CityValidation:
    is_valid: bool
    distance_km: Optional[int]
    message: str


def find_city(name: str) -> Optional[City]:
    needle = (name or "").strip().lower()
    for city in ALL_KNOWN_CITIES:
        if city.name.lower() == needle:
            return city
    return None


def validate_city_distance(name: Optional[str]) -> CityValidation:
    if not name or not name.strip():
        return CityValidation(False, None, "Please enter a city name")
    city = find_city(name)
    if city is None:
        return CityValidation(
            False,
            None,
            OUT_OF_RADIUS_MESSAGE
            + " Please select a city from the list or contact support for other locations.",
        )
    if city.distance_km > MAX_DELIVERY_RADIUS_KM:
        return CityValidation(False, city.distance_km, OUT_OF_RADIUS_MESSAGE)
    return CityValidation(
        True,
        city.distance_km,
        f"{city.name} is within delivery radius ({city.distance_km} km from Panchkula)",
    )


def search_cities(query: Optional[str]) -> List[City]:
    if not query or len(query.strip()) < 2:
        return list(PREDEFINED_CITIES)
    q = query.strip().lower()
    matches = [c for c in ALL_KNOWN_CITIES if q in c.name.lower() or q in c.state.lower()]
    return sorted(matches, key=lambda c: c.distance_km)


def get_eligible_cities() -> List[City]:
    return sorted(
        (c for c in ALL_KNOWN_CITIES if c.distance_km <= MAX_DELIVERY_RADIUS_KM),
        key=lambda c: c.distance_km,
    )
