from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    data_dir: str = "/var/lib/cni/networks"
    log_file: Optional[str] = None
    log_level: str = "INFO"

    class Config:
        env_prefix = "HOSTLOCAL_"
        env_file = ".env"
        case_sensitive = False


class CNIEnv(BaseSettings):
    """Per-invocation arguments handed over by the container runtime."""

    command: Optional[str] = None
    containerid: Optional[str] = None
    netns: Optional[str] = None
    ifname: Optional[str] = None
    args: str = ""
    path: Optional[str] = None

    class Config:
        env_prefix = "CNI_"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
