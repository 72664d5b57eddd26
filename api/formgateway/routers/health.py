from fastapi import APIRouter, Request

router = APIRouter()


@router.get("")
def health(request: Request):
    """Return service status and the number of configured form fields."""
    config = request.app.state.config_store.get()
    return {"status": "ok", "fields": len(config.fields)}
