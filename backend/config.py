"""
Application settings loaded from the environment (.env supported).
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    APP_NAME = "Feedback Forms API"

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./feedback.db")

    # Security
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))

    # CORS
    ORIGINS = [o.strip() for o in os.getenv("ORIGINS", "http://localhost:3000").split(",") if o.strip()]

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Pagination
    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 200

    # Form shape
    MIN_QUESTIONS = 3
    MAX_QUESTIONS = 5
    MIN_OPTIONS = 2
    QUESTION_TYPES = ("text", "multiple-choice")

    # Summary: how many text answers are echoed back per question
    TEXT_SUMMARY_LIMIT = 20


settings = Settings()
