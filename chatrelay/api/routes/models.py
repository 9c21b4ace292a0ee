"""
chatrelay - Models API

Static catalog of the models the browser client may pick from.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ...core.catalog import list_models as list_catalog_models


router = APIRouter(prefix="/api", tags=["models"])


@router.get("/models")
async def list_models():
    """
    List enabled models.

    **Example response:**
    ```
    [{"id": "gpt-4", "name": "GPT-4", "tokenLimit": 8000}]
    ```
    """
    return JSONResponse(content=[m.to_dict() for m in list_catalog_models()])
