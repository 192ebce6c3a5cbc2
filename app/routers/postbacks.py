from datetime import datetime, timezone

import orjson
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import ORJSONResponse, PlainTextResponse

from app.core.exceptions import AuthenticationError, ValidationError
from app.core.logging import get_logger
from app.deps import get_dispatcher
from app.services.outcomes import PostbackResult
from app.services.postbacks import PostbackDispatcher
from app.services.providers import ADGEM, CPX, parse_adgem, parse_cpx

router = APIRouter()
log = get_logger(__name__)

ACCEPTED_NOTE = "Error logged but request accepted"


def adgem_response(result: PostbackResult) -> dict:
    if not result.ok:
        return {
            "success": False,
            "error": result.diagnostic.message,
            "note": ACCEPTED_NOTE,
        }
    return {
        "success": True,
        **result.outcome.to_wire(),
        "received_at": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/adgem")
async def adgem_postback(request: Request, dispatcher: PostbackDispatcher = Depends(get_dispatcher)):
    """AdGem webhook. Always 200 except a bad signature (401); other methods get 405."""
    config = dispatcher.provider(ADGEM)
    raw = await request.body()
    try:
        body = orjson.loads(raw) if raw else None
    except orjson.JSONDecodeError:
        body = None
    try:
        notification = parse_adgem(body, request.headers.get(config.signature_header))
        result = await dispatcher.dispatch(notification, raw_body=raw)
    except AuthenticationError as e:
        return ORJSONResponse(status_code=e.status_code, content={"error": e.message})
    except ValidationError as e:
        log.warning("postback_rejected", provider=ADGEM, reason=e.message)
        return ORJSONResponse(
            status_code=status.HTTP_200_OK,
            content={"success": False, "error": e.message, "note": ACCEPTED_NOTE},
        )
    return ORJSONResponse(content=adgem_response(result))


@router.get("/cpx", response_class=PlainTextResponse)
async def cpx_postback(request: Request, dispatcher: PostbackDispatcher = Depends(get_dispatcher)):
    """CPX postback. Plain "OK" unless parameters are missing (400) or the hash is wrong (403)."""
    config = dispatcher.provider(CPX)
    try:
        notification = parse_cpx(request.query_params, config)
        await dispatcher.dispatch(notification)
    except ValidationError as e:
        log.warning("postback_rejected", provider=CPX, reason=e.message)
        return PlainTextResponse(e.message, status_code=status.HTTP_400_BAD_REQUEST)
    except AuthenticationError as e:
        return PlainTextResponse(e.message, status_code=e.status_code)
    return PlainTextResponse("OK")
