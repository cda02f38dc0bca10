from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

_SAMPLE_DIR = Path(__file__).resolve().parent.parent / "data" / "sample"


@dataclass(frozen=True)
class StoreConfig:
    data_dir: Path = Path(os.getenv("DISCOVERY_DATA_DIR", str(_SAMPLE_DIR)))
    service_key: str = os.getenv("DISCOVERY_SERVICE_KEY", "")
    service_key_min_length: int = 16
    businesses_filename: str = "businesses.csv"
    stats_filename: str = "business_stats.csv"
    reviews_filename: str = "reviews.csv"
    images_filename: str = "images.csv"
    rankings_filename: str = "rankings.csv"

    def table_path(self, filename: str) -> Path:
        return self.data_dir / filename


DEFAULT_STORE_CONFIG = StoreConfig()
