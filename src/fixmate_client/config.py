from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Client configuration loaded from environment variables."""

    api_url: str = "http://localhost:5001/api/v1"
    identity_url: str = "http://localhost:5001/api/v1/auth"  # POST {identity_url}/refresh issues credentials
    request_timeout: float = 30.0
    debug: bool = False
    storage_path: str | None = None  # JSON file for the persistent storage scope, memory when unset
    refresh_interval: float = 50 * 60  # Forced refresh cadence, ten minutes ahead of the one-hour expiry
    poll_interval: float = 30
    poll_limit: int = 10
    toast_stagger: float = 0.5
    toast_capacity: int = 5
    toast_duration: float = 5.0
    mark_read_delay: float = 1.0  # Lets the user see a toast before it is marked read

    model_config = {
        "env_file": [".env"],
        "env_prefix": "FIXMATE_",
        "extra": "ignore",
    }
