from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "filing-intake"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite+pysqlite:///./taxintake.db"

    CORS_ORIGINS: str = "http://localhost:3000"

    # Firm users authenticate with the hosted auth provider; we only verify its tokens.
    FIRM_JWT_SECRET: str = "change_me_firm"
    FIRM_JWT_TTL_MINUTES: int = 240

    FORM_TEMPLATES_DIR: str = "forms"
    PDF_SUPPORTED_FORMS: str = "1041"
    PDF_MISSING_SAMPLE_LIMIT: int = 25
    PDF_DUMP_NAME_LIMIT: int = 250

    INVITE_TTL_DAYS: int = 30
    PUBLIC_SITE_URL: str = "http://localhost:3000"

    S3_ENDPOINT: str = "http://localhost:9000"
    S3_ACCESS_KEY: str = "minio"
    S3_SECRET_KEY: str = "minio123"
    S3_BUCKET: str = "filing-attachments"
    S3_REGION: str = "us-east-1"
    S3_USE_SSL: bool = False
    MAX_FILE_MB: int = 25
    ATTACHMENT_ALLOWED_MIME_TYPES: str = (
        "application/pdf,image/jpeg,image/png,text/plain"
    )

    EMAIL_PROVIDER: str = "dummy"  # dummy | smtp | service
    EMAIL_SERVICE_URL: str = "http://email-service:8010"
    INTERNAL_SERVICE_TOKEN: str = "change_me_internal_service_token"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    INVITE_EMAIL_SUBJECT_TEMPLATE: str = "Your {form_code} questionnaire for {tax_year}"
    INVITE_EMAIL_TEMPLATE: str = (
        "Your attorney has asked you to complete the Form {form_code} questionnaire "
        "for tax year {tax_year}.\n\nOpen this link to get started: {link}\n\n"
        "The link expires on {expires_at}."
    )

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def pdf_supported_forms_list(self) -> List[str]:
        return [o.strip() for o in self.PDF_SUPPORTED_FORMS.split(",") if o.strip()]

    @property
    def allowed_mime_types_list(self) -> List[str]:
        return [o.strip().lower() for o in self.ATTACHMENT_ALLOWED_MIME_TYPES.split(",") if o.strip()]

settings = Settings()
