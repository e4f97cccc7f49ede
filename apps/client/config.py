"""Client settings (env prefix PERSONAL_ASSISTANT_)."""
from pydantic_settings import BaseSettings
from pydantic import ConfigDict


class ClientSettings(BaseSettings):
    model_config = ConfigDict(env_prefix="PERSONAL_ASSISTANT_", env_file=".env", env_file_encoding="utf-8", extra="ignore")
    api_url: str = "http://localhost:3000/api"
    request_timeout: float = 30
