"""Shared FastAPI dependencies. Tests replace these through app.dependency_overrides."""
import functools
from typing import Optional

from fastapi import Depends, HTTPException

from hostprobe.commands import default_catalog
from hostprobe.config import Settings, load_settings
from hostprobe.core.catalog import CommandCatalog
from hostprobe.core.errors import ConfigError
from hostprobe.core.registry import AccessorFactory, RegistrySnapshot, open_accessor


@functools.lru_cache(maxsize=1)
def get_catalog() -> CommandCatalog:
    return default_catalog()


def get_settings() -> Settings:
    try:
        return load_settings()
    except ConfigError as e:
        raise HTTPException(status_code=500, detail=f"Invalid server configuration: {e}")


def get_accessor_factory(settings: Settings = Depends(get_settings)) -> AccessorFactory:
    snapshot: Optional[RegistrySnapshot] = None
    if settings.snapshot:
        try:
            snapshot = RegistrySnapshot.load(settings.snapshot)
        except ConfigError as e:
            raise HTTPException(status_code=500, detail=f"Invalid server configuration: {e}")
    return functools.partial(open_accessor, snapshot=snapshot)
