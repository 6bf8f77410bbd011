from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...domain.schemas.auth import SendOtpIn, SendOtpOut, VerifyOtpIn, VerifyOtpOut
from ...services.errors import ChatError, DependencyFailure, NotFound
from ...services.otp import OtpManager
from ..deps import get_otp_manager

router = APIRouter(prefix="/auth", tags=["auth"])
log = logging.getLogger(__name__)


@router.post("/send-otp", response_model=SendOtpOut)
async def send_otp(payload: SendOtpIn, otp: OtpManager = Depends(get_otp_manager)):
    try:
        email = await otp.request_otp(payload.email)
    except DependencyFailure as e:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": e.message})
    except ChatError as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": e.message})
    return SendOtpOut(message="OTP sent successfully", email=email)


@router.post("/verify-otp", response_model=VerifyOtpOut)
async def verify_otp(payload: VerifyOtpIn, otp: OtpManager = Depends(get_otp_manager)):
    try:
        email = await otp.verify_otp(payload.email, payload.otp)
    except NotFound as e:
        code = status.HTTP_404_NOT_FOUND
        return JSONResponse(status_code=code, content={"success": False, "error": e.message})
    except DependencyFailure as e:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return JSONResponse(status_code=code, content={"success": False, "error": e.message})
    except ChatError as e:
        # InvalidInput, Expired, Mismatch
        code = status.HTTP_400_BAD_REQUEST
        return JSONResponse(status_code=code, content={"success": False, "error": e.message})
    except Exception:
        log.exception("verify_otp_failed")
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return JSONResponse(status_code=code, content={"success": False, "error": "Internal server error"})
    return VerifyOtpOut(message="OTP verified successfully", email=email)
