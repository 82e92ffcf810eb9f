from fastapi import APIRouter, Depends, Request

from finivis.services.notifications import EmailSender, FixedWindowRateLimiter, send_notification

from .deps import get_current_user, get_email_limiter, get_email_sender

router = APIRouter(prefix="/notifications", tags=["notifications"])


# The body is read inside the handler, after authentication, so an anonymous
# caller always gets 401 and malformed JSON gets the email validator's 400.
@router.post("/email", summary="Send a transactional email")
async def send_email(
    request: Request,
    user: dict = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
    limiter: FixedWindowRateLimiter = Depends(get_email_limiter),
):
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    return await send_notification(payload, user, user["is_admin"], sender, limiter)
