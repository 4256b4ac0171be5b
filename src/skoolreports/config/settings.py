from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    storage_backend: str = os.getenv("SKOOLREPORTS_STORAGE", "sqlite").strip().lower()
    database_path: str = os.getenv("SKOOLREPORTS_DB_PATH", "data/skoolreports.db")

    appwrite_endpoint: str = os.getenv("APPWRITE_ENDPOINT", "")
    appwrite_project_id: str = os.getenv("APPWRITE_PROJECT_ID", "")
    appwrite_api_key: str = os.getenv("APPWRITE_API_KEY") or os.getenv("APPWRITE_FUNCTION_API_KEY", "")
    appwrite_database_id: str = os.getenv("APPWRITE_DATABASE_ID", "")
    appwrite_pupils_collection_id: str = os.getenv("APPWRITE_PUPILS_COLLECTION_ID", "pupils")
    appwrite_marks_collection_id: str = os.getenv("APPWRITE_MARKS_COLLECTION_ID", "marks")

    school_name: str = os.getenv("SCHOOL_NAME", "Bright Generation Learning Centre")
    school_location: str = os.getenv("SCHOOL_LOCATION", "Kalisizo")
    academic_year: str = os.getenv("ACADEMIC_YEAR", "")
    academic_term: str = os.getenv("ACADEMIC_TERM", "")

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )
    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()


settings = Settings()
