from __future__ import annotations

from pydantic import BaseModel, Field


class Reason(BaseModel):
    label: str
    metric: str
    value: float | int


class BusinessCard(BaseModel):
    id: str
    name: str
    image: str | None = None
    image_url: str | None = None
    uploaded_images: list[str] = Field(default_factory=list)
    alt: str
    category: str
    sub_interest_id: str
    location: str | None = None
    rating: float | None = None
    review_count: int
    badge: str | None = None
    reason: Reason
    rank: int
    href: str
    verified: bool = False
    price_range: str | None = None


class RankingMeta(BaseModel):
    period: str
    generated_at: str
    seed: str
    source: str
    count: int


class RankingResponse(BaseModel):
    data: list[BusinessCard]
    meta: RankingMeta


class ErrorResponse(BaseModel):
    error: str
