import html
import logging
import os
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

logger = logging.getLogger(__name__)

APP_URL = os.getenv("APP_URL", "https://tecnicosenrd.com").rstrip("/")
BRAND_NAME = "Técnicos en RD"


def _layout(title: str, body_html: str, button_label: Optional[str] = None, button_url: Optional[str] = None) -> str:
    button = ""
    if button_label and button_url:
        button = (
            f'<p style="text-align:center;margin:28px 0">'
            f'<a href="{html.escape(button_url)}" style="background:#2563EB;color:#fff;padding:12px 24px;'
            f'border-radius:6px;text-decoration:none">{html.escape(button_label)}</a></p>'
        )
    return (
        '<div style="font-family:Arial,sans-serif;max-width:560px;margin:0 auto">'
        f'<h2 style="color:#1E3A8A">{html.escape(title)}</h2>'
        f"{body_html}{button}"
        f'<p style="color:#6B7280;font-size:12px">{BRAND_NAME}</p>'
        "</div>"
    )


def verification_email(name: str, token: str) -> tuple[str, str]:
    link = f"{APP_URL}/verify-email?token={token}"
    return (
        "Verifica tu correo electrónico",
        _layout(
            f"¡Hola {name}!",
            "<p>Gracias por registrarte. Confirma tu correo para activar tu cuenta.</p>",
            "Verificar correo",
            link,
        ),
    )


def password_reset_email(name: str, token: str) -> tuple[str, str]:
    link = f"{APP_URL}/reset-password?token={token}"
    return (
        "Restablecer tu contraseña",
        _layout(
            f"Hola {name}",
            "<p>Recibimos una solicitud para restablecer tu contraseña. El enlace expira en 1 hora.</p>",
            "Restablecer contraseña",
            link,
        ),
    )


def welcome_email(name: str) -> tuple[str, str]:
    return (
        f"¡Bienvenido a {BRAND_NAME}!",
        _layout(
            f"¡Bienvenido, {name}!",
            "<p>Tu correo ha sido verificado. Ya puedes reservar técnicos de confianza en Santiago.</p>",
            "Ir a la plataforma",
            APP_URL,
        ),
    )


def booking_email(heading: str, message: str, booking_id: str) -> tuple[str, str]:
    return (
        heading,
        _layout(heading, f"<p>{html.escape(message)}</p>", "Ver reserva", f"{APP_URL}/bookings/{booking_id}"),
    )


def achievement_email(name: str, achievement_name: str, points: int) -> tuple[str, str]:
    return (
        f"🏆 ¡Nuevo logro desbloqueado: {achievement_name}!",
        _layout(
            f"¡Felicidades, {name}!",
            f"<p>Desbloqueaste el logro <strong>{html.escape(achievement_name)}</strong> "
            f"y ganaste {points} puntos.</p>",
            "Ver mis logros",
            f"{APP_URL}/achievements",
        ),
    )


def level_up_email(name: str, level_name: str, level_number: int) -> tuple[str, str]:
    return (
        f"⬆️ ¡Subiste al nivel {level_number}!",
        _layout(
            f"¡Felicidades, {name}!",
            f"<p>Ahora eres <strong>{html.escape(level_name)}</strong>. "
            "Sigue acumulando puntos para más beneficios.</p>",
            "Ver mi progreso",
            f"{APP_URL}/achievements",
        ),
    )


class EmailSender:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_address: Optional[str] = None,
    ):
        self.host = (host if host is not None else os.getenv("SMTP_HOST", "")).strip()
        self.port = port if port is not None else _parse_port(os.getenv("SMTP_PORT", "587"))
        self.username = username if username is not None else os.getenv("SMTP_USER", "")
        self.password = password if password is not None else os.getenv("SMTP_PASS", "")
        self.from_address = from_address or os.getenv("SMTP_FROM", f"{BRAND_NAME} <noreply@tecnicosenrd.com>")
        if not self.host:
            logger.info("E-mail delivery disabled: SMTP_HOST not set")

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def send(self, to: str, subject: str, html_content: str) -> bool:
        """Deliver one HTML message. Returns False when delivery is disabled or fails."""
        if not self.configured or not to:
            return False
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = to
        msg.attach(MIMEText(html_content, "html", "utf-8"))
        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, context=ssl.create_default_context(), timeout=30)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=30)
                server.starttls(context=ssl.create_default_context())
            with server:
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.from_address.split("<")[-1].rstrip(">"), [to], msg.as_string())
        except (smtplib.SMTPException, OSError):
            logger.exception("SMTP send failed for %s", to)
            return False
        logger.info("E-mail sent to %s: %s", to, subject)
        return True


def _parse_port(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        return 587


email_sender = EmailSender()
