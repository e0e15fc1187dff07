from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration with environment variable support (JP_CLINS_ prefix)"""

    # App
    app_name: str = "JP-CLINS FHIR Conversion Service"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Bundle assembly
    fhir_base_url: str = "http://jp-clins.local/fhir"  # Base for Bundle.entry.fullUrl

    # Serialization defaults
    default_format: str = "json"  # 'json' or 'xml'
    default_pretty_format: bool = True

    # Validation
    require_encounter: bool = False  # Reject documents without an encounter reference
    check_output_conformance: bool = False  # Log JP-CLINS bundle rule violations after conversion

    class Config:
        env_prefix = "JP_CLINS_"
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
