import os
from pathlib import Path

from dotenv import load_dotenv

from models import Settings, DEFAULT_GEMINI_MODELS

load_dotenv()
load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env", override=False)


def get_settings() -> Settings:
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY_FALLBACK") or os.getenv("GEMINI_API_KEY"),
        gemini_models=os.getenv("GEMINI_MODELS") or DEFAULT_GEMINI_MODELS,
        rate_limit_requests_per_minute=int(os.getenv("RATE_LIMIT_RPM", "60")),
        scrape_base_url=os.getenv("SCRAPE_BASE_URL", "https://collegedunia.com"),
        scrape_max_pages=int(os.getenv("SCRAPE_MAX_PAGES", "5")),
        scrape_page_delay_seconds=float(os.getenv("SCRAPE_PAGE_DELAY_SECONDS", "1.0")),
        scrape_fetch_retries=int(os.getenv("SCRAPE_FETCH_RETRIES", "3")),
        scrape_request_timeout_seconds=int(os.getenv("SCRAPE_REQUEST_TIMEOUT_SECONDS", "20")),
        colleges_json_path=os.getenv(
            "COLLEGES_JSON_PATH",
            str(Path(__file__).resolve().parent / "data" / "indian_colleges.json"),
        ),
    )
