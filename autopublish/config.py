import os
from dotenv import load_dotenv

load_dotenv()

def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./autopublish.db")
    hf_api_token: str = os.getenv("HF_API_TOKEN", "")
    analyzer_model: str = os.getenv("ANALYZER_MODEL", "mistralai/Mistral-7B-Instruct-v0.3")
    generator_model: str = os.getenv("GENERATOR_MODEL", "mistralai/Mistral-7B-Instruct-v0.3")
    image_model: str = os.getenv("IMAGE_MODEL", "stabilityai/stable-diffusion-xl-base-1.0")
    image_generation_enabled: bool = _flag("IMAGE_GENERATION_ENABLED", "true")
    # Fernet key used to encrypt WordPress application passwords at rest
    fernet_key: str = os.getenv("FERNET_KEY", "")
    poll_interval_seconds: int = int(os.getenv("POLL_INTERVAL_SECONDS", "60"))
    run_on_start: bool = _flag("RUN_ON_START", "true")
    restart_grace_seconds: float = float(os.getenv("RESTART_GRACE_SECONDS", "1.0"))
    # WordPress ships "Uncategorized" as category 1
    default_category_id: int = int(os.getenv("DEFAULT_CATEGORY_ID", "1"))
    wordpress_timeout: float = float(os.getenv("WORDPRESS_TIMEOUT", "30"))
    analysis_post_limit: int = int(os.getenv("ANALYSIS_POST_LIMIT", "50"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
