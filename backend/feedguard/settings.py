from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_LEXICON_PATH = str(Path(__file__).resolve().parent / "data" / "lexicon.json")


class Settings(BaseSettings):
    LEXICON_PATH: str = DEFAULT_LEXICON_PATH
    CONFIG_PATH: str = "feedguard_config.json"
    OPENAI_BASE_URL: str = ""
    REMOTE_TIMEOUT_SECONDS: float = 20.0
    PORT: int = 8000

settings = Settings(_env_file=".env", _env_file_encoding="utf-8")
