from pydantic_settings import BaseSettings
from dotenv import load_dotenv


load_dotenv()


class Settings(BaseSettings):
    app_name: str = "Maryadha Samples API"
    debug: bool = False
    database_url: str = "sqlite:///./samples.db"
    host: str = "127.0.0.1"
    port: int = 8000
    allowed_hosts: str = ""
    app_url: str = "https://maryadha.com"

    log_file: str = "logs/application.log"
    log_level: str = "INFO"

    # Payment processor ("stripe" or "mock")
    payment_processor: str = "mock"
    stripe_secret_key: str = ""
    stripe_api_base: str = "https://api.stripe.com/v1"
    default_currency: str = "usd"

    # Delivery transports
    fcm_server_key: str = ""
    fcm_url: str = "https://fcm.googleapis.com/fcm/send"
    resend_api_key: str = ""
    resend_url: str = "https://api.resend.com/emails"
    email_from: str = "Maryadha <notifications@maryadha.com>"

    http_timeout_seconds: float = 10.0
    notification_timeout_seconds: float = 15.0


settings = Settings()

if settings.payment_processor == "stripe" and not settings.stripe_secret_key:
    raise RuntimeError("Stripe secret key not configured.")
