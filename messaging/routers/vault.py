from typing import Optional

from fastapi import APIRouter, Depends

from messaging.schemas.messaging import CreateVaultItemRequest, ShareVaultItemRequest, UnshareVaultItemRequest
from messaging.services.vault_service import VaultService
from messaging.utils.dependencies import get_current_user, get_vault_service


router = APIRouter(prefix="/password-vault", tags=["password-vault"])


@router.get("/items")
async def list_items(current_user: dict = Depends(get_current_user), service: VaultService = Depends(get_vault_service)):
    items = await service.list_items(current_user["id"])
    return {"items": items}


@router.post("/items", status_code=201)
async def create_item(payload: CreateVaultItemRequest, current_user: dict = Depends(get_current_user), service: VaultService = Depends(get_vault_service)):
    item = await service.create_item(current_user["id"], payload)
    return {"item": item}


@router.post("/items/{item_id}/share")
async def share_item(item_id: int, payload: ShareVaultItemRequest, current_user: dict = Depends(get_current_user), service: VaultService = Depends(get_vault_service)):
    item = await service.share_item(current_user["id"], item_id, payload)
    return {"item": item}


@router.post("/items/{item_id}/unshare")
async def unshare_item(item_id: int, payload: Optional[UnshareVaultItemRequest] = None, current_user: dict = Depends(get_current_user), service: VaultService = Depends(get_vault_service)):
    target = payload.target_conversation_id if payload else None
    item = await service.unshare_item(current_user["id"], item_id, target)
    return {"item": item, "message": "Vault share removed"}


@router.post("/items/{item_id}/reveal")
async def reveal_item(item_id: int, current_user: dict = Depends(get_current_user), service: VaultService = Depends(get_vault_service)):
    return await service.reveal_item(current_user["id"], item_id)
