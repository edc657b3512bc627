from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    session_max_age_ms: int = Field(60 * 60 * 1000, gt=0)
    session_cookie_max_age_days: int = Field(30, gt=0)
    secure_cookies: bool = False
    rate_limit: int | None = Field(None, gt=0)
    rate_window_ms: int = Field(60_000, gt=0)
    default_history_count: int = Field(5, gt=0)
    supabase_url: str = ""
    supabase_anon_key: str = ""


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
