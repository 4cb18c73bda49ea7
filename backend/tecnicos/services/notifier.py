"""Fan-out of domain events to in-app notifications and e-mail.

Delivery never fails the request that triggered it: errors are logged and dropped here.
"""

import logging
from typing import Any, Dict, Optional

from tecnicos.models import Booking, User
from tecnicos.services import email_sender as templates
from tecnicos.services.email_sender import EmailSender, email_sender
from tecnicos.services.notification_store import NotificationStore, notification_store
from tecnicos.services.user_store import UserStore, user_store

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, users: UserStore, notifications: NotificationStore, mailer: EmailSender):
        self.users = users
        self.notifications = notifications
        self.mailer = mailer

    def _notify(
        self,
        user_id: Optional[str],
        title: str,
        body: str,
        category: str,
        deep_link: Optional[str] = None,
        email: Optional[tuple[str, str]] = None,
    ) -> None:
        if not user_id:
            return
        try:
            self.notifications.create(user_id=user_id, title=title, body=body, category=category, deep_link=deep_link)
            if email is not None:
                user = self.users.get_user(user_id)
                if user:
                    subject, html = email
                    self.mailer.send(user.email, subject, html)
        except Exception:
            logger.exception("Notification delivery failed for user %s (%s)", user_id, title)

    def _name(self, user_id: Optional[str], fallback: str = "") -> str:
        user = self.users.get_user(user_id) if user_id else None
        return user.name if user else fallback

    def booking_created(self, booking: Booking) -> None:
        when = f"{booking.scheduled_date} a las {booking.scheduled_time}"
        link = f"/bookings/{booking.id}"
        self._notify(
            booking.customer_id,
            "Reserva creada",
            f"Tu reserva con {booking.technician_name or 'el técnico'} para el {when} está pendiente de confirmación.",
            "booking",
            link,
            templates.booking_email(
                "Reserva creada",
                f"Tu solicitud para el {when} fue enviada. Te avisaremos cuando el técnico la confirme.",
                booking.id,
            ),
        )
        self._notify(
            booking.technician_user_id,
            "Nueva solicitud de reserva",
            f"{booking.customer_name or 'Un cliente'} solicitó un servicio para el {when}.",
            "booking",
            link,
            templates.booking_email(
                "Nueva solicitud de reserva",
                f"Tienes una nueva solicitud de {booking.service_type} para el {when} en {booking.city}.",
                booking.id,
            ),
        )

    def booking_confirmed(self, booking: Booking) -> None:
        message = f"Tu reserva del {booking.scheduled_date} a las {booking.scheduled_time} fue confirmada."
        self._notify(
            booking.customer_id,
            "Reserva confirmada",
            message,
            "booking",
            f"/bookings/{booking.id}",
            templates.booking_email("Reserva confirmada", message, booking.id),
        )

    def booking_started(self, booking: Booking) -> None:
        self._notify(
            booking.customer_id,
            "Servicio en progreso",
            f"{booking.technician_name or 'El técnico'} comenzó el servicio.",
            "booking",
            f"/bookings/{booking.id}",
        )

    def booking_completed(self, booking: Booking) -> None:
        message = "Tu servicio fue completado. ¡Deja una reseña y gana puntos!"
        self._notify(
            booking.customer_id,
            "Servicio completado",
            message,
            "booking",
            f"/bookings/{booking.id}",
            templates.booking_email("Servicio completado", message, booking.id),
        )

    def booking_cancelled(self, booking: Booking) -> None:
        reason = f" Motivo: {booking.cancel_reason}" if booking.cancel_reason else ""
        message = f"La reserva del {booking.scheduled_date} a las {booking.scheduled_time} fue cancelada.{reason}"
        recipients = [booking.customer_id, booking.technician_user_id]
        for user_id in recipients:
            self._notify(
                user_id,
                "Reserva cancelada",
                message,
                "booking",
                f"/bookings/{booking.id}",
                templates.booking_email("Reserva cancelada", message, booking.id),
            )

    def booking_no_show(self, booking: Booking) -> None:
        self._notify(
            booking.customer_id,
            "Reserva marcada como no presentada",
            f"El técnico reportó que no estuviste presente el {booking.scheduled_date}.",
            "booking",
            f"/bookings/{booking.id}",
        )

    def achievement_unlocked(self, user_id: str, achievement: Dict[str, Any]) -> None:
        self._notify(
            user_id,
            "¡Logro desbloqueado!",
            f"{achievement['name_es']}: +{achievement['points_reward']} puntos",
            "gamification",
            "/achievements",
            templates.achievement_email(self._name(user_id), achievement["name_es"], achievement["points_reward"]),
        )

    def level_up(self, user_id: str, level: Dict[str, Any]) -> None:
        self._notify(
            user_id,
            "¡Subiste de nivel!",
            f"Ahora eres {level['name_es']} (nivel {level['level_number']})",
            "gamification",
            "/achievements",
            templates.level_up_email(self._name(user_id), level["name_es"], level["level_number"]),
        )

    def send_verification(self, user: User, token: str) -> None:
        try:
            self.mailer.send(user.email, *templates.verification_email(user.name, token))
        except Exception:
            logger.exception("Verification e-mail failed for %s", user.id)

    def send_password_reset(self, user: User, token: str) -> None:
        try:
            self.mailer.send(user.email, *templates.password_reset_email(user.name, token))
        except Exception:
            logger.exception("Password reset e-mail failed for %s", user.id)

    def send_welcome(self, user: User) -> None:
        self._notify(
            user.id,
            "¡Bienvenido!",
            "Tu correo fue verificado.",
            "account",
            None,
            templates.welcome_email(user.name),
        )


notifier = Notifier(users=user_store, notifications=notification_store, mailer=email_sender)
