from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./careconnect.db"
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    log_level: str = "INFO"
    cors_origins: str = "*"
    # Voice message blobs
    media_dir: str = "./media"
    media_url: str = "/media"

    class Config:
        env_prefix = ""
        env_file = ".env"


settings = Settings()
