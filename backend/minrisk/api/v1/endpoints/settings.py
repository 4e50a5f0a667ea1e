from fastapi import APIRouter

from minrisk.api.deps import CurrentUser, UserSessionDep
from minrisk.models.app_config import AppConfig
from minrisk.schemas.settings import AppConfigRead, AppConfigUpdate
from minrisk.services import app_configs as app_configs_service

router = APIRouter()


@router.get("/app-config", response_model=AppConfigRead)
async def read_app_config(session: UserSessionDep, current_user: CurrentUser) -> AppConfig:
    config = await app_configs_service.get_config(session, current_user)
    if config is None:
        # Defaults are served without writing a row until the user saves.
        return app_configs_service.default_config(current_user)
    return config


@router.put("/app-config", response_model=AppConfigRead)
async def update_app_config(
    config_in: AppConfigUpdate,
    session: UserSessionDep,
    current_user: CurrentUser,
) -> AppConfig:
    config = await app_configs_service.update_config(
        session, current_user, config_in.model_dump(exclude_unset=True)
    )
    await session.commit()
    return config
