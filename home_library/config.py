import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Database
    database_file: str = os.getenv(
        "LIBRARY_DB_FILE",
        os.path.join(os.path.expanduser("~"), ".home-library", "library.db"),
    )

    # Open Library lookup
    openlibrary_timeout: float = float(os.getenv("OPENLIBRARY_TIMEOUT", "10"))
    openlibrary_retries: int = int(os.getenv("OPENLIBRARY_RETRIES", "3"))
    enable_metadata_lookup: bool = _env_bool("ENABLE_METADATA_LOOKUP", "True")

    # Application
    app_name: str = os.getenv("APP_NAME", "Home Library")
    log_level: str = os.getenv("LOG_LEVEL", "WARNING")
    output_mode: str = os.getenv("LIB_CLI_OUTPUT", "plain")


settings = Settings()
