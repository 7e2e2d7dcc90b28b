import os
from dotenv import load_dotenv # type: ignore

load_dotenv()

GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")
GROQ_TEMPERATURE = float(os.getenv("GROQ_TEMPERATURE", "0.2"))

TAVILY_API_KEY = os.getenv("TAVILY_WEB_SEARCH")
VIDEO_SEARCH_DOMAINS = [
    d.strip() for d in os.getenv("VIDEO_SEARCH_DOMAINS", "youtube.com").split(",") if d.strip()
]
VIDEO_SEARCH_MAX_RESULTS = int(os.getenv("VIDEO_SEARCH_MAX_RESULTS", "5"))

DIAGNOSIS_TIMEOUT_SECONDS = float(os.getenv("DIAGNOSIS_TIMEOUT_SECONDS", "30"))
VIDEO_TIMEOUT_SECONDS = float(os.getenv("VIDEO_TIMEOUT_SECONDS", "10"))
MAX_FOLLOW_UP_QUESTIONS = int(os.getenv("MAX_FOLLOW_UP_QUESTIONS", "5"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
