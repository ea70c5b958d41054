"""FastAPI transport for the slide-captcha protocol.

Responses use the mall API envelope::

    {"code": 200, "msg": "OK", "err_msg": "", "data": {...}}

Failures carry the error's code and message, with the HTTP status taken from
the raised :class:`~mall_captcha.errors.CaptchaError`.
"""

import logging
from typing import Any, Optional

try:
    from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
    from fastapi.exceptions import RequestValidationError
    from fastapi.responses import JSONResponse
    from pydantic import BaseModel
except ImportError:
    raise ImportError(
        "FastAPI is not installed. Install it with: pip install 'mall-captcha[fastapi]'"
    )

from .engine import CaptchaEngine
from .errors import CaptchaError
from .types import Point, RedeemedTicket

logger = logging.getLogger(__name__)

OK_CODE = 200
PARAM_ERROR_CODE = 400
TICKET_HEADER = "X-Captcha-Ticket"


class CheckCaptchaRequest(BaseModel):
    key: str
    slide_x: int
    slide_y: int


class RedeemTicketRequest(BaseModel):
    ticket: str


def write_resp(data: Any = None, status_code: int = 200, **error: Any) -> JSONResponse:
    """
    Wrap ``data`` in the API envelope.

    Args:
        data: Response payload
        status_code: HTTP status
        **error: Optional ``code``, ``msg`` and ``err_msg`` overrides for
            failure responses

    Returns:
        JSONResponse with the envelope body
    """
    body = {
        "code": error.get("code", OK_CODE),
        "msg": error.get("msg", "OK"),
        "err_msg": error.get("err_msg", ""),
        "data": data,
    }
    return JSONResponse(status_code=status_code, content=body)


def write_error(exc: CaptchaError) -> JSONResponse:
    """Envelope for a protocol failure."""
    return write_resp(
        status_code=exc.http_status,
        code=exc.code,
        msg=exc.message,
        err_msg=exc.err_msg,
    )


def get_engine(request: Request) -> CaptchaEngine:
    """Dependency returning the engine attached to the application."""
    engine = getattr(request.app.state, "captcha_engine", None)
    if engine is None:
        raise RuntimeError("captcha engine is not configured on app.state")
    return engine


async def _captcha_error_handler(request: Request, exc: CaptchaError) -> JSONResponse:
    return write_error(exc)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return write_resp(
        status_code=400,
        code=PARAM_ERROR_CODE,
        msg="Param Error",
        err_msg=f"Param Error,{exc.errors()}",
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Render protocol and validation failures as envelopes."""
    app.add_exception_handler(CaptchaError, _captcha_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)


def create_captcha_router(prefix: str = "/admin/v1/user/verify") -> APIRouter:
    """
    Build the captcha routes.

    Routes:
        GET  {prefix}/captcha         issue a slide puzzle
        POST {prefix}/captcha/check   verify a submission, returns a ticket
        POST {prefix}/captcha/ticket  redeem a ticket, returns its challenge key

    The engine is looked up via :func:`get_engine`, so the application must
    set ``app.state.captcha_engine`` and call
    :func:`install_exception_handlers`.
    """
    router = APIRouter(prefix=prefix)

    @router.get("/captcha")
    async def get_slide_captcha(engine: CaptchaEngine = Depends(get_engine)) -> JSONResponse:
        issued = await engine.issue_challenge()
        puzzle = issued.puzzle
        return write_resp(
            {
                "key": issued.challenge_id,
                "image_bs64": puzzle.master_image,
                "title_image_bs64": puzzle.tile_image,
                "title_width": puzzle.tile_width,
                "title_height": puzzle.tile_height,
                "title_x": puzzle.tile_x,
                "title_y": puzzle.tile_y,
                "expire": issued.expires_in,
            }
        )

    @router.post("/captcha/check")
    async def check_slide_captcha(
        body: CheckCaptchaRequest, engine: CaptchaEngine = Depends(get_engine)
    ) -> JSONResponse:
        verified = await engine.verify_challenge(body.key, Point(x=body.slide_x, y=body.slide_y))
        return write_resp({"ticket": verified.ticket_id, "expire": verified.expires_in})

    @router.post("/captcha/ticket")
    async def redeem_captcha_ticket(
        body: RedeemTicketRequest, engine: CaptchaEngine = Depends(get_engine)
    ) -> JSONResponse:
        redeemed = await engine.redeem_ticket(body.ticket)
        return write_resp({"key": redeemed.challenge_id})

    return router


class CaptchaTicket:
    """
    FastAPI dependency that redeems a captcha ticket.

    Guards a follow-on route such as login: the request must carry a ticket
    from a successful verification in the ``X-Captcha-Ticket`` header, and
    that ticket is consumed by the request.

    Usage:
        from mall_captcha.fastapi import CaptchaTicket

        require_captcha = CaptchaTicket()

        @app.post('/admin/v1/user/login')
        async def login(body: LoginReq, ticket: RedeemedTicket = Depends(require_captcha)):
            ...
    """

    def __init__(self, header: str = TICKET_HEADER, auto_error: bool = True):
        """
        Args:
            header: Request header carrying the ticket
            auto_error: If True, raise HTTPException(401) on a missing or
                unusable ticket. If False, return None instead.
        """
        self.header = header
        self.auto_error = auto_error

    async def __call__(self, request: Request) -> Optional[RedeemedTicket]:
        """
        Redeem the ticket on the request.

        Raises:
            HTTPException: If the ticket is missing, expired or reused and
                auto_error=True
            StoreUnavailable: If the store is unreachable, regardless of
                auto_error
        """
        ticket = request.headers.get(self.header)
        if not ticket:
            if self.auto_error:
                raise HTTPException(status_code=401, detail=f"Missing {self.header} header")
            return None

        engine = get_engine(request)
        try:
            return await engine.redeem_ticket(ticket)
        except CaptchaError as e:
            if e.http_status >= 500:
                raise
            if self.auto_error:
                raise HTTPException(status_code=e.http_status, detail=e.message) from e
            return None
