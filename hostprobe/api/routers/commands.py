from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hostprobe.api.dependencies import get_catalog
from hostprobe.api.security import verify_api_key
from hostprobe.core.catalog import CommandCatalog


class CommandInfo(BaseModel):
    name: str
    description: str
    groups: List[str]
    supports_remote: bool


router = APIRouter(
    prefix="/commands",
    tags=["Commands"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("", response_model=List[CommandInfo], summary="List the available commands")
async def list_commands(catalog: CommandCatalog = Depends(get_catalog)):
    return [
        CommandInfo(
            name=metadata.name,
            description=metadata.description,
            groups=sorted(group.value for group in metadata.groups),
            supports_remote=metadata.supports_remote,
        )
        for metadata in catalog.metadata()
    ]
