from __future__ import annotations

from ..catalog.models import MISCELLANEOUS

SUBCATEGORY_LABELS: dict[str, str] = {
    "restaurants": "Restaurants",
    "cafes": "Cafés",
    "coffee-shops": "Coffee Shops",
    "bakeries": "Bakeries",
    "bars": "Bars",
    "wine-bars": "Wine Bars",
    "breweries": "Breweries",
    "fast-food": "Fast Food",
    "fine-dining": "Fine Dining",
    "sushi": "Sushi",
    "pizza": "Pizza",
    "gyms": "Gyms",
    "yoga": "Yoga Studios",
    "spas": "Spas",
    "salons": "Hair Salons",
    "barbers": "Barbers",
    "nail-salons": "Nail Salons",
    "bookstores": "Bookstores",
    "boutiques": "Boutiques",
    "florists": "Florists",
    "galleries": "Art Galleries",
    "museums": "Museums",
    "theatres": "Theatres",
    "live-music": "Live Music",
    "hiking": "Hiking",
    "beaches": "Beaches",
    "pet-services": "Pet Services",
    "vets": "Vets",
    MISCELLANEOUS: "Miscellaneous",
}


def category_label(slug: str | None) -> str:
    """Display label for a bucket slug, title-casing unknown slugs."""
    key = (slug or "").strip().lower()
    if not key:
        return SUBCATEGORY_LABELS[MISCELLANEOUS]
    if key in SUBCATEGORY_LABELS:
        return SUBCATEGORY_LABELS[key]
    return " ".join(part.capitalize() for part in key.replace("_", "-").split("-") if part)
