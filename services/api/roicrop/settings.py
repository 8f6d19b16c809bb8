from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite:///./roicrop.db"
    STORAGE_DIR: str = "./data"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    ALLOW_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"
    ROI_DETECTOR: str = "center-crop"
    FETCH_TIMEOUT_SECONDS: float = 30.0

settings = Settings()
