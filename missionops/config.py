from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    # Core
    environment: str = Field(default="dev")
    app_name: str = Field(default="MissionOps Store")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Remote store
    store_base_url: str = Field(
        default="http://localhost:8080/api",
        alias="MISSIONOPS_STORE_URL",
        description="Base URL of the deployments API, e.g. https://ops.example.com/api",
    )
    store_api_token: Optional[str] = Field(default=None, alias="MISSIONOPS_API_TOKEN")
    request_timeout_s: float = Field(default=30.0, alias="REQUEST_TIMEOUT_S")

    # Ledger / batch
    parallel_batch_workers: int = Field(default=8, alias="PARALLEL_BATCH_WORKERS")
    enforce_status_transitions: bool = Field(default=True, alias="ENFORCE_STATUS_TRANSITIONS")

    # Pricing
    default_markup_percentage: int = Field(default=30, alias="DEFAULT_MARKUP_PERCENTAGE")
    markup_min: int = Field(default=0, alias="MARKUP_MIN")
    markup_max: int = Field(default=200, alias="MARKUP_MAX")
    lodging_daily_rate: float = Field(default=150.0, alias="LODGING_DAILY_RATE")
    labor_multiplier: float = Field(default=1.0, alias="LABOR_MULTIPLIER")

    # Invoicing
    default_payment_terms_days: int = Field(default=30, alias="DEFAULT_PAYMENT_TERMS_DAYS")
    invoice_link_ttl_days: int = Field(default=7, alias="INVOICE_LINK_TTL_DAYS")
    frontend_base_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Mail (no host configured -> mock transport)
    smtp_host: Optional[str] = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(default=None, alias="SMTP_PASSWORD")
    smtp_tls: bool = Field(default=True, alias="SMTP_TLS")
    mail_from: Optional[str] = Field(default=None, alias="MAIL_FROM")
    admin_email: Optional[str] = Field(default=None, alias="ADMIN_EMAIL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True


settings = Settings()
