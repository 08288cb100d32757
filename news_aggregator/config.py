import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_key: str
    gemini_api_key: Optional[str] = None
    page_size: int = 10
    recommendation_timeout: float = 2.0
    preferences_path: Optional[Path] = None
    project_root: Path = Path(__file__).resolve().parent.parent

    @property
    def logs_dir(self) -> Path:
        return self.project_root / "logs"


def get_settings() -> Settings:
    url = os.getenv("SUPABASE_URL", "")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    if not url:
        raise RuntimeError("Missing SUPABASE_URL in environment or .env")
    if not key:
        raise RuntimeError("Missing SUPABASE_SERVICE_ROLE_KEY in environment or .env")

    prefs = os.getenv("PREFERENCES_PATH")
    return Settings(
        supabase_url=url.rstrip("/"),
        supabase_key=key,
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        page_size=int(os.getenv("PAGE_SIZE", "10")),
        recommendation_timeout=float(os.getenv("RECOMMENDATION_TIMEOUT", "2.0")),
        preferences_path=Path(prefs) if prefs else None,
    )
