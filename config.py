import os
import yaml
import keyring

from settings_schema import SettingsSchema, validate_settings

APP_VERSION = "1.0.0"
KEYRING_SERVICE = "trainlytics"

# first set variable wins
ENV_OVERRIDES = {
    "supabase_url": ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
    "supabase_anon_key": ("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
}


def _env_override(names) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


class YamlConfig:
    """Settings file in YAML; auth keys go to the OS keyring when encrypted."""

    SECRET_KEYS = ("supabase_anon_key",)

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def load(self) -> dict:
        data = self._read()
        if not self.encrypt:
            return data
        for key in self.SECRET_KEYS:
            if key not in data:
                continue
            secret = keyring.get_password(KEYRING_SERVICE, key)
            if secret is None:
                # placeholder left behind with no keyring entry
                del data[key]
            else:
                data[key] = secret
        return data

    def save(self, data: dict) -> SettingsSchema:
        """Validate ``data`` and write it, moving secrets to the keyring."""
        settings = validate_settings(data)
        out = dict(data)
        if self.encrypt:
            for key in self.SECRET_KEYS:
                if out.get(key):
                    keyring.set_password(KEYRING_SERVICE, key, str(out[key]))
                    out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)
        return settings

    def settings(self) -> SettingsSchema:
        """Return the file's settings with environment overrides applied."""
        data = self.load()
        for key, names in ENV_OVERRIDES.items():
            value = _env_override(names)
            if value:
                data[key] = value
        if os.environ.get("APP_ENV") == "production":
            data["secure_cookies"] = True
        return validate_settings(data)


def load_settings(path: str = "settings.yaml") -> SettingsSchema:
    return YamlConfig(path).settings()
