"""Instance settings routes."""

from fastapi import APIRouter, Depends

from newtube.api.dependencies import get_settings_store
from newtube.services.settings_store import InstanceSettings, SettingsStore

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=InstanceSettings, response_model_by_alias=True)
async def get_settings(store: SettingsStore = Depends(get_settings_store)) -> InstanceSettings:
    return store.get()


@router.put("", response_model=InstanceSettings, response_model_by_alias=True)
async def update_settings(
    payload: InstanceSettings,
    store: SettingsStore = Depends(get_settings_store),
) -> InstanceSettings:
    """Replace the runtime settings; applied to the next request."""
    return await store.update(payload)
