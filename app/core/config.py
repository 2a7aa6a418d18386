from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load the .env file from the project root before reading the environment
load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True)

    # Auth provider (HS256 bearer tokens)
    JWT_SECRET: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"

    # MongoDB
    MONGO_URL: str = "mongodb://localhost:27017"
    DB_NAME: str = "koda"

    # Public URL of the web app, used for Stripe redirects
    APP_URL: str = "http://localhost:3000"

    # Stripe
    STRIPE_API_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    CURRENCY: str = "eur"

    # Object storage
    AWS_REGION: str = "eu-west-3"
    AWS_S3_BUCKET_NAME: str = "koda-uploads"
    PRODUCT_FILE_EXTENSION: str = ".json"
    MAX_IMAGE_SIZE: int = 10 * 1024 * 1024

    # Rate limiting (disabled when REDIS_URL is unset)
    REDIS_URL: Optional[str] = None
    RATE_LIMIT_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 10

settings = Settings()
