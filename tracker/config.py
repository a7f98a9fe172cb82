from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import shlex

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_HOST: str = "0.0.0.0"
    SERVICE_PORT: int = 8080
    # SQLite database file holding the action table
    DB_NAME: str = "./stats.db"
    # Remote collector receiving locally harvested coverage events
    DEST_ENDPOINT: str = "http://localhost:8080/action"
    FORWARDER_QUEUE_SIZE: int = 16
    # Local test run triggered after each inbound event
    HARVEST_ENABLED: bool = True
    HARVEST_COMMAND: str = "go test -cover ./..."
    HARVEST_TIMEOUT_SECONDS: float | None = None
    MAX_EVENT_SIZE: int = 1048576
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"

    @property
    def harvest_argv(self) -> list[str]:
        return shlex.split(self.HARVEST_COMMAND)

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
