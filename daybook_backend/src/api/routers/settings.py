from __future__ import annotations

from fastapi import APIRouter, Depends

from ..dependencies import get_store
from ..repositories import EntityStore
from ..schemas import SettingsOut, SettingsUpdate

router = APIRouter(
    prefix="/api/settings",
    tags=["settings"],
)


# PUBLIC_INTERFACE
@router.get("", response_model=SettingsOut, summary="Get Settings")
def get_settings(store: EntityStore = Depends(get_store)) -> SettingsOut:
    """
    Return the user settings, creating the defaults on first access.
    """
    return SettingsOut.model_validate(store.settings.get())


# PUBLIC_INTERFACE
@router.put(
    "",
    response_model=SettingsOut,
    summary="Update Settings",
    description="Merge the provided fields into the settings; omitted fields are kept.",
)
def update_settings(payload: SettingsUpdate, store: EntityStore = Depends(get_store)) -> SettingsOut:
    return SettingsOut.model_validate(store.settings.update(payload))
