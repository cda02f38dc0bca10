from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd

from ..ranking.seed import GLOBAL_REGION, normalize_region, tie_break_hash
from .config import DEFAULT_STORE_CONFIG, StoreConfig
from .models import Candidate, Image, PoolFilters
from .normalize import normalize_flag, to_candidate
from .source import CatalogSource, PermissionDenied, SourceUnavailable

logger = logging.getLogger(__name__)


class AccessLevel(str, enum.Enum):
    SERVICE = "service"
    PUBLIC = "public"


# Tables the public access path is not allowed to read.
RESTRICTED_TABLES = frozenset({"reviews", "rankings"})


def _utc(series: pd.Series) -> pd.Series:
    return pd.to_datetime(series, utc=True, errors="coerce")


class DataFrameCatalogSource(CatalogSource):
    """Read-only catalog over in-memory pandas tables.

    ``businesses`` and ``business_stats`` are required; ``reviews``,
    ``images`` and ``rankings`` are optional and raise ``SourceUnavailable``
    when read while absent.
    """

    def __init__(
        self,
        businesses: pd.DataFrame,
        stats: pd.DataFrame,
        reviews: pd.DataFrame | None = None,
        images: pd.DataFrame | None = None,
        rankings: pd.DataFrame | None = None,
        access: AccessLevel = AccessLevel.SERVICE,
    ) -> None:
        self.access = access
        self._tables = {
            "reviews": reviews,
            "images": images,
            "rankings": rankings,
        }
        self._businesses = self._prepare_businesses(businesses, stats)

    @staticmethod
    def _prepare_businesses(businesses: pd.DataFrame, stats: pd.DataFrame) -> pd.DataFrame:
        df = businesses.copy()
        df["id"] = df["id"].astype(str)

        stats = stats.copy()
        stats["business_id"] = stats["business_id"].astype(str)
        df = df.merge(stats, how="left", left_on="id", right_on="business_id")
        df = df.drop(columns=["business_id"])

        # Only active businesses are ever visible to ranking
        if "status" in df.columns:
            df = df[df["status"].fillna("active").astype(str).str.strip().str.lower() == "active"]

        df["_created_ts"] = _utc(df.get("created_at", pd.Series(pd.NaT, index=df.index)))
        df["_bucket_lower"] = df.get("sub_interest_id", pd.Series("", index=df.index)).fillna("").astype(str).str.strip().str.lower()
        df["_category_lower"] = df.get("category", pd.Series("", index=df.index)).fillna("").astype(str).str.strip().str.lower()
        df["_location_lower"] = df.get("location", pd.Series("", index=df.index)).fillna("").astype(str).str.lower()
        df["average_rating"] = pd.to_numeric(df.get("average_rating"), errors="coerce").fillna(0.0)
        df["total_reviews"] = pd.to_numeric(df.get("total_reviews"), errors="coerce").fillna(0).astype(int)
        return df.reset_index(drop=True)

    # ── helpers ─────────────────────────────────────────────────────────

    def _table(self, name: str) -> pd.DataFrame:
        if self.access is AccessLevel.PUBLIC and name in RESTRICTED_TABLES:
            raise PermissionDenied(f"public access cannot read '{name}'")
        table = self._tables.get(name)
        if table is None:
            raise SourceUnavailable(f"table '{name}' is not available")
        return table

    def _category_mask(self, df: pd.DataFrame, category: str | None) -> pd.Series:
        if not category:
            return pd.Series(True, index=df.index)
        slug = category.strip().lower()
        return (df["_bucket_lower"] == slug) | (df["_category_lower"] == slug)

    @staticmethod
    def _to_candidates(df: pd.DataFrame) -> list[Candidate]:
        public_cols = [c for c in df.columns if not c.startswith("_")]
        return [to_candidate(row) for row in df[public_cols].to_dict("records")]

    # ── CatalogSource ───────────────────────────────────────────────────

    def fetch_primary_ranked(
        self,
        surface: str,
        region: str | None,
        limit: int,
        seed: str,
        category: str | None = None,
    ) -> list[Candidate]:
        rankings = self._table("rankings").copy()
        rankings["business_id"] = rankings["business_id"].astype(str)
        rankings = rankings[rankings["surface"].astype(str).str.lower() == surface.lower()]

        # Rows without a region are global and apply everywhere
        row_region = rankings.get("region", pd.Series("", index=rankings.index)).fillna("").astype(str).str.strip().str.lower()
        target = normalize_region(region)
        if target == GLOBAL_REGION:
            rankings = rankings[row_region == ""]
        else:
            rankings = rankings[(row_region == "") | (row_region == target)]

        ranked = rankings[["business_id", "score"]].rename(columns={"score": "rank_score"})
        df = self._businesses.merge(ranked, how="inner", left_on="id", right_on="business_id")
        df = df.drop(columns=["business_id"])
        df = df[self._category_mask(df, category)]
        if df.empty:
            return []

        # Best regional or global score wins when a business appears twice
        df = df.sort_values("rank_score", ascending=False).drop_duplicates("id")
        df["_hash"] = [tie_break_hash(seed, bid) for bid in df["id"]]
        df = df.sort_values(["rank_score", "_hash"], ascending=[False, True])
        return self._to_candidates(df.head(limit))

    def fetch_raw_candidate_pool(self, filters: PoolFilters, pool_size: int) -> list[Candidate]:
        df = self._businesses
        mask = self._category_mask(df, filters.category)
        if filters.city:
            mask = mask & df["_location_lower"].str.contains(
                filters.city.strip().lower(), regex=False, na=False,
            )

        pool = df.loc[mask].sort_values(
            ["_created_ts", "id"], ascending=[False, True], na_position="last",
        )
        return self._to_candidates(pool.head(pool_size))

    def fetch_recent_review_counts(
        self, candidate_ids: Sequence[str], since: datetime,
    ) -> dict[str, int]:
        reviews = self._table("reviews")
        if not candidate_ids or reviews.empty:
            return {}
        ids = reviews["business_id"].astype(str)
        created = _utc(reviews["created_at"])
        mask = ids.isin(list(candidate_ids)) & (created >= pd.Timestamp(since))
        counts = ids[mask].value_counts()
        return {str(k): int(v) for k, v in counts.items()}

    def fetch_quality_fallback(self, limit: int) -> list[Candidate]:
        df = self._businesses
        pool = df[(df["total_reviews"] >= 3) & (df["average_rating"] >= 3.5)].copy()
        pool["_weighted"] = pool["average_rating"] * np.log1p(pool["total_reviews"])
        pool = pool.sort_values(
            ["_weighted", "average_rating", "total_reviews", "id"],
            ascending=[False, False, False, True],
        )
        return self._to_candidates(pool.head(limit))

    def fetch_newest(self, limit: int, category: str | None = None) -> list[Candidate]:
        df = self._businesses
        pool = df[self._category_mask(df, category)].sort_values(
            ["_created_ts", "id"], ascending=[False, True], na_position="last",
        )
        return self._to_candidates(pool.head(limit))

    def fetch_images(self, candidate_ids: Sequence[str]) -> dict[str, list[Image]]:
        images = self._table("images")
        if not candidate_ids or images.empty:
            return {}
        df = images.copy()
        df["business_id"] = df["business_id"].astype(str)
        df = df[df["business_id"].isin(list(candidate_ids))].copy()
        df["_primary"] = df.get("is_primary", pd.Series(False, index=df.index)).apply(normalize_flag)
        df["_created_ts"] = _utc(df.get("created_at", pd.Series(pd.NaT, index=df.index)))
        df = df.sort_values(["_primary", "_created_ts"], ascending=[False, False], na_position="last")

        grouped: dict[str, list[Image]] = {}
        for row in df.to_dict("records"):
            url = row.get("url")
            if not isinstance(url, str) or not url.strip():
                continue
            alt = row.get("alt_text")
            grouped.setdefault(row["business_id"], []).append(Image(
                business_id=row["business_id"],
                url=url.strip(),
                alt_text=alt if isinstance(alt, str) and alt.strip() else None,
                is_primary=bool(row["_primary"]),
            ))
        return grouped


# ── Loading ─────────────────────────────────────────────────────────────


def _read_table(path: Path) -> pd.DataFrame | None:
    if not path.exists():
        return None
    return pd.read_csv(path, dtype={"id": str, "business_id": str})


def resolve_access(config: StoreConfig) -> AccessLevel:
    """Service access needs a well-formed key; anything else degrades to public."""
    key = config.service_key.strip()
    if not key:
        logger.warning("Service key not configured, using public catalog access")
        return AccessLevel.PUBLIC
    if len(key) < config.service_key_min_length or any(ch.isspace() for ch in key):
        logger.warning("Service key is malformed, using public catalog access")
        return AccessLevel.PUBLIC
    return AccessLevel.SERVICE


def load_catalog(config: StoreConfig = DEFAULT_STORE_CONFIG) -> DataFrameCatalogSource:
    businesses = _read_table(config.table_path(config.businesses_filename))
    stats = _read_table(config.table_path(config.stats_filename))
    if businesses is None or stats is None:
        raise SourceUnavailable(f"catalog tables missing under {config.data_dir}")

    return DataFrameCatalogSource(
        businesses=businesses,
        stats=stats,
        reviews=_read_table(config.table_path(config.reviews_filename)),
        images=_read_table(config.table_path(config.images_filename)),
        rankings=_read_table(config.table_path(config.rankings_filename)),
        access=resolve_access(config),
    )


_catalog: DataFrameCatalogSource | None = None


def get_catalog() -> CatalogSource:
    """Return the process-wide catalog, loading it on first call."""
    global _catalog
    if _catalog is None:
        _catalog = load_catalog()
    return _catalog


def reset_catalog() -> None:
    global _catalog
    _catalog = None
