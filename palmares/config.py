from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings

PROVIDER_OPTION_FIELDS = (
    "name", "url", "list", "details", "clubs", "couples", "search", "date_format",
)


class Settings(BaseSettings):
    log_level: str = "INFO"
    http_timeout: float = 30.0
    user_agent: str = "Palmares/1.0"

    # French ballroom dancing federation listing pages
    ffds_name: str = "FFDS"
    ffds_url: str | None = None
    ffds_list: str | None = None
    ffds_details: str | None = None
    ffds_clubs: str | None = None
    ffds_couples: str | None = None
    ffds_search: str | None = None
    ffds_date_format: str = "%d/%m/%Y"

    @field_validator("log_level", mode="before")
    @classmethod
    def default_empty_log_level(cls, v: str) -> str:
        if not v or not v.strip():
            return "INFO"
        return v

    model_config = {"env_prefix": "", "case_sensitive": False}

    def provider_options(self, key: str) -> dict[str, Any]:
        """Collect the ``<key>_<option>`` settings of one provider.

        Unset options are left out so that building ``ProviderOptions`` from
        the result reports every missing endpoint at once.
        """
        options: dict[str, Any] = {}
        for field in PROVIDER_OPTION_FIELDS:
            value = getattr(self, f"{key}_{field}", None)
            if value is not None:
                options[field] = value
        return options


settings = Settings()
