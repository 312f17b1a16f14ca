from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./production.db"
    APP_NAME: str = "S2P Production Pipeline"
    LOG_LEVEL: str = "INFO"

    # Room density assumed by the scan-count calculation when the scoping
    # form leaves it blank (2 = Standard)
    DEFAULT_ROOM_DENSITY: int = 2

    class Config:
        env_file = ".env"


settings = Settings()
