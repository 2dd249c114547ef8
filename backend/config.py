from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List, Literal


class Settings(BaseSettings):
    # CORS origins: set ALLOWED_ORIGINS env var for production (JSON list)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    debug: bool = False
    log_level: str = "INFO"

    lobby_code_length: int = 6
    player_id_length: int = 10
    min_players: int = 3

    # Defaults to the bundled data/topics.json
    catalog_path: Optional[str] = None

    # "first" keeps the first most-voted target in tally order; "random" draws among the tied
    tie_break: Literal["first", "random"] = "first"
    # Impostors only get the plaintext secret in roundAssigned when this is on
    reveal_secret_to_impostors: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
