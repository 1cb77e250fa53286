from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "dev"                # "dev" / "staging" / "prod"
    SERVICE_NAME: str = "storefront"
    PRIVILEGED_ROLES: List[str] = ["admin"]

    class Config:
        env_file = ".env"
        extra="ignore"

admin_config = Settings()
