from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DL_", env_file=".env", extra="ignore")

    ENV: str = Field(default="dev")
    DB_URL: str = Field(default="sqlite:///./decisionledger.db")
    LOG_DIR: str = Field(default="./logs")

    # 框架目录（None 表示使用包内置 frameworks.yaml）
    FRAMEWORKS_PATH: str | None = Field(default=None)

    # Check 报告中的记录链接前缀
    APP_URL: str = Field(default="http://localhost:3000")

    VAULT_SEALED_BY: str = Field(default="system")
    AUDIT_LOG_ENABLED: bool = Field(default=True)

settings = Settings()
