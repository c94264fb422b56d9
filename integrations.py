"""Contact form relay and GitHub profile passthrough."""
import logging

import httpx
from fastapi import APIRouter, Depends, status

from context import AppContext, get_context
from errors import ApiError, BadRequest, NotFound, ServiceUnavailable, api_response
from payload import Payload, read_payload

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("name", "email", "subject", "message")


def send_contact_message(context: AppContext, payload: Payload) -> dict:
    values = {name: payload.text(name) for name in CONTACT_FIELDS}
    if not all(values.values()):
        raise BadRequest("All fields are required")

    settings = context.settings
    recipient = settings.contact_to or settings.mail_from
    if not settings.mail_relay_url or not settings.mail_relay_key or not recipient:
        logger.error("Mail relay not configured; contact from %s <%s> dropped: %s",
                     values["name"], values["email"], values["subject"])
        raise ServiceUnavailable("Email service temporarily unavailable")

    message = {
        "from": f"{values['name']} via Portfolio <{settings.mail_from or recipient}>",
        "to": [recipient],
        "reply_to": values["email"],
        "subject": f"[Portfolio Contact] {values['subject']}",
        "text": f"From: {values['name']} <{values['email']}>\n\nMessage:\n{values['message']}",
    }
    try:
        response = context.http.post(
            settings.mail_relay_url,
            json=message,
            headers={"Authorization": f"Bearer {settings.mail_relay_key}"},
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Mail relay failed (%s); contact from %s <%s>: %s / %s",
                     exc, values["name"], values["email"], values["subject"], values["message"])
        raise ServiceUnavailable(
            "Email service temporarily unavailable. Your message has been logged "
            "and we will contact you soon."
        )

    body = response.json() if response.content else {}
    logger.info("Contact message relayed for %s", values["email"])
    return {"ok": True, "message_id": body.get("id")}


def fetch_github_profile(context: AppContext, username: str) -> dict:
    username = (username or "").strip()
    if not username:
        raise BadRequest("Username required")
    response = context.http.get(
        f"{context.settings.github_api_url.rstrip('/')}/users/{username}",
        headers={"Accept": "application/vnd.github+json"},
    )
    if response.status_code == status.HTTP_404_NOT_FOUND:
        raise NotFound("GitHub user not found")
    if response.is_error:
        raise ApiError("GitHub fetch failed", status_code=response.status_code)
    return response.json()


router = APIRouter(tags=["integrations"])


@router.post("/contact")
def contact(payload: Payload = Depends(read_payload), context: AppContext = Depends(get_context)):
    result = send_contact_message(context, payload)
    return api_response(status.HTTP_200_OK, "Message sent successfully", result)


@router.get("/github/{username}")
def github_profile(username: str, context: AppContext = Depends(get_context)):
    profile = fetch_github_profile(context, username)
    return api_response(status.HTTP_200_OK, "GitHub profile fetched", {"profile": profile})
