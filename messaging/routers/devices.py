from fastapi import APIRouter, Depends

from messaging.database.connection import mongo_db_dependency
from messaging.errors import NotFoundError
from messaging.repositories.device_repository import DeviceRepository
from messaging.schemas.messaging import RegisterDeviceRequest
from messaging.utils.dependencies import get_current_user


router = APIRouter(prefix="/devices", tags=["push"])


@router.post("/register")
async def register_device(payload: RegisterDeviceRequest, current_user: dict = Depends(get_current_user), db = Depends(mongo_db_dependency)):
    doc = await DeviceRepository(db).register(current_user["id"], payload.platform, payload.token)
    return {"ok": True, "device": {"platform": doc["platform"], "token": doc["token"]}}


@router.delete("/{token}")
async def unregister_device(token: str, current_user: dict = Depends(get_current_user), db = Depends(mongo_db_dependency)):
    if not await DeviceRepository(db).unregister(current_user["id"], token):
        raise NotFoundError("Device not registered")
    return {"ok": True}
