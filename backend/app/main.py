from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as v1_router
from backend.app.core.config import API_HOST, API_PORT
from backend.app.core.logging import configure_logging
from backend.services.errors import InventoryError

configure_logging()

app = FastAPI(title="Fleet Parts Inventory", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


def run() -> None:
    """Point d'entrée `fleet-parts-api` : sert l'application avec uvicorn."""
    import uvicorn

    uvicorn.run("backend.app.main:app", host=API_HOST, port=API_PORT, log_config=None)
