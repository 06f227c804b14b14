"""Library bootstrap route.

One request returns every video, short, subtitle list and comment tree so
a client can render the library offline. The payload is cached until the
next catalog write.
"""

from fastapi import APIRouter, Depends

from newtube.api.dependencies import get_library
from newtube.api.schemas import BootstrapResponse
from newtube.services.library import LibraryService

router = APIRouter(tags=["library"])


@router.get("/bootstrap", response_model=BootstrapResponse, response_model_by_alias=True)
async def bootstrap(library: LibraryService = Depends(get_library)) -> BootstrapResponse:
    snapshot = await library.bootstrap()
    return BootstrapResponse.from_snapshot(snapshot)
