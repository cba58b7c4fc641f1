from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """A required binding (user identity, store, provider key) is missing."""


class Settings(BaseSettings):
    # LLM provider: "openai", "azure" or "anthropic"
    llm_provider: str = "azure"
    llm_temperature: float = 0.9
    llm_max_tokens: int = 4096
    llm_timeout_seconds: int = 120

    # OpenAI
    openai_api_key: str | None = None
    openai_model: str = "gpt-4.1"

    # Azure OpenAI
    azure_openai_api_key: str | None = None
    azure_openai_endpoint: str | None = None  # e.g. https://my-instance.openai.azure.com
    azure_openai_deployment: str = "gpt-4.1"
    azure_openai_api_version: str = "2024-10-21"

    # Anthropic
    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-20250514"

    # Agent
    agent_max_steps: int = 25
    memory_search_limit: int = 10
    tool_timeout_seconds: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    cors_origins: str = "*"  # comma-separated

    # Data
    data_dir: str = "/data"
    database_url: str | None = None

    # Intake
    local_timezone: str = "Asia/Kolkata"
    water_storage_unit: str = "ml"  # "ml" or "oz"
    default_calorie_target: int = 2000

    # Auth
    jwt_access_secret: str = "change-me-access"
    jwt_refresh_secret: str = "change-me-refresh"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7

    # OTP
    otp_ttl_seconds: int = 300
    otp_max_attempts: int = 3
    otp_sweep_interval_seconds: int = 60
    demo_email: str | None = "demo@abc.com"
    demo_otp: str = "000000"

    # SMTP (OTP delivery)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_use_starttls: bool = True
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_from_address: str | None = None  # Falls back to smtp_username

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
