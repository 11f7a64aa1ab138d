from __future__ import annotations

import io
import logging
from typing import Protocol

import qrcode

from .model import Recipient

logger = logging.getLogger(__name__)


def render_qr_png(payload: str) -> bytes:
    """PNG bytes of a QR code carrying `payload` (the worker code on badges)."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class NotificationSender(Protocol):
    """Delivers one worker's QR badge. Raise to report a failed delivery."""

    def send(self, recipient: Recipient, qr_png: bytes) -> None:
        raise NotImplementedError


class LoggingSender:
    """Default sender: records the delivery in the log and nothing else."""

    def send(self, recipient: Recipient, qr_png: bytes) -> None:
        if not recipient.email and not recipient.phone:
            raise ValueError(f"Worker {recipient.worker_code} has no email or phone")
        logger.info(
            "qr badge worker=%s to=%s bytes=%s",
            recipient.worker_code, recipient.email or recipient.phone, len(qr_png),
        )
