import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
    FLASK_PORT = int(os.getenv("FLASK_PORT", "6000"))

    DB_HOST = os.getenv("DB_HOST", "127.0.0.1")
    DB_PORT = int(os.getenv("DB_PORT", "5432"))
    DB_NAME = os.getenv("DB_NAME", "inventory")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "postgres")

    SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Forecast run defaults
    FORECAST_DAYS = int(os.getenv("FORECAST_DAYS", "30"))
    HISTORICAL_DAYS = int(os.getenv("HISTORICAL_DAYS", "30"))
    FORECAST_WORKERS = int(os.getenv("FORECAST_WORKERS", "1"))

    # How the stocked product is located in the catalog
    STOCKED_PRODUCT_CODE = os.getenv("STOCKED_PRODUCT_CODE", "ALK")
    STOCKED_PRODUCT_NAME = os.getenv("STOCKED_PRODUCT_NAME", "Alkansya")

    # Daily usage used when a material has neither history nor a BOM baseline
    DEFAULT_DAILY_USAGE = float(os.getenv("DEFAULT_DAILY_USAGE", "0"))

    @property
    def DATABASE_URL(self):
        override = os.getenv("DATABASE_URL")
        if override:
            return override
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


config = Config()
