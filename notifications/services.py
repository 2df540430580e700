import json
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction

from .models import DeviceToken, Notification

logger = logging.getLogger(__name__)


class NotificationService:
    _firebase_app_initialized = False

    @classmethod
    def _init_firebase(cls) -> bool:
        if cls._firebase_app_initialized:
            return True
        try:
            import firebase_admin
            from firebase_admin import credentials

            if firebase_admin._apps:
                cls._firebase_app_initialized = True
                return True

            service_account_path = getattr(settings, "FCM_SERVICE_ACCOUNT_FILE", "")
            service_account_json = getattr(settings, "FCM_SERVICE_ACCOUNT_JSON", "")
            project_id = getattr(settings, "FCM_PROJECT_ID", "")

            if service_account_json:
                cred = credentials.Certificate(json.loads(service_account_json))
            elif service_account_path:
                cred = credentials.Certificate(service_account_path)
            else:
                logger.info("FCM credentials are not configured. Push sending is disabled.")
                return False
            firebase_admin.initialize_app(cred, {"projectId": project_id} if project_id else None)

            cls._firebase_app_initialized = True
            return True
        except Exception:
            logger.exception("Failed to initialize Firebase app")
            return False

    @classmethod
    def notify(
        cls,
        *,
        user,
        notification_type: str,
        title: str,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
        reservation=None,
        reservation_update=None,
    ) -> Notification:
        """Store an in-app notification; the device push goes out once the caller's transaction commits."""
        payload = payload or {}
        if reservation_update is not None:
            existing = Notification.objects.filter(user=user, reservation_update=reservation_update).first()
            if existing:
                return existing

        notification = Notification.objects.create(
            user=user,
            type=notification_type,
            title=title,
            message=message,
            payload=payload,
            reservation=reservation,
            reservation_update=reservation_update,
        )
        transaction.on_commit(
            lambda: cls._push_safely(user=user, notification_type=notification_type, title=title, message=message, payload=payload)
        )
        return notification

    @classmethod
    def notify_admins(cls, **kwargs):
        User = get_user_model()
        admins = User.objects.filter(role=User.Role.ADMIN, is_active=True)
        return [cls.notify(user=admin, **kwargs) for admin in admins]

    @classmethod
    def _push_safely(cls, *, user, notification_type, title, message, payload):
        try:
            cls._send_push_to_user(user=user, title=title, message=message, payload=payload)
        except Exception:
            logger.exception("Push send failed for user=%s type=%s", user.id, notification_type)

    @classmethod
    def _send_push_to_user(cls, *, user, title: str, message: str, payload: Dict[str, Any]) -> None:
        if not cls._init_firebase():
            return
        tokens = list(DeviceToken.objects.filter(user=user, is_active=True).values_list("token", flat=True))
        if not tokens:
            return

        from firebase_admin import messaging
        from firebase_admin.exceptions import FirebaseError

        data = {
            key: value if isinstance(value, str) else json.dumps(value, default=str)
            for key, value in payload.items()
        }
        for token in tokens:
            try:
                msg = messaging.Message(
                    notification=messaging.Notification(title=title, body=message),
                    data=data,
                    token=token,
                )
                messaging.send(msg)
            except FirebaseError as exc:
                error_code = getattr(exc, "code", "") or str(exc)
                # Deactivate known invalid token scenarios.
                if "registration-token-not-registered" in error_code or "invalid-argument" in error_code:
                    DeviceToken.objects.filter(token=token).update(is_active=False)
                logger.warning("FCM send failed token=%s code=%s", token[:12], error_code)
            except Exception:
                logger.exception("Unexpected FCM error token=%s", token[:12])


def reservation_snapshot(reservation) -> Dict[str, Any]:
    details = []
    for detail in reservation.details.select_related("variant"):
        details.append(
            {
                "product_name": detail.product_name or "Unknown Product",
                "variant_label": detail.variant.label if detail.variant else f"{detail.size} {detail.unit}".strip(),
                "quantity": detail.quantity,
                "price": str(detail.price),
                "subtotal": str(detail.subtotal),
            }
        )
    return {
        "reservation_id": str(reservation.id),
        "status": reservation.status,
        "total_price": str(reservation.total_price),
        "remarks": reservation.remarks or reservation.notes or "",
        "details": details,
    }


class NotificationTemplates:
    STATUS_MESSAGES = {
        "confirmed": "Your reservation has been confirmed!",
        "cancelled": "Your reservation has been cancelled.",
        "failed": "Your reservation could not be fulfilled.",
    }

    @staticmethod
    def reservation_status_changed(reservation, new_status):
        message = NotificationTemplates.STATUS_MESSAGES.get(
            new_status, f"Your reservation status changed to {new_status}."
        )
        notification_type = (
            Notification.Type.CANCELLED if new_status == "cancelled" else Notification.Type.STATUS_CHANGED
        )
        payload = reservation_snapshot(reservation)
        payload.update({"type": notification_type, "entity_id": str(reservation.id), "entity_type": "reservation"})
        return notification_type, "Reservation Update", message, payload

    @staticmethod
    def reservation_completed(reservation, sale):
        payload = reservation_snapshot(reservation)
        payload.update(
            {
                "type": Notification.Type.COMPLETED,
                "entity_id": str(reservation.id),
                "entity_type": "reservation",
                "sale_id": str(sale.id),
            }
        )
        return Notification.Type.COMPLETED, "Reservation Completed", "Your reservation has been completed!", payload

    @staticmethod
    def low_stock(variant):
        return (
            Notification.Type.LOW_STOCK,
            "Low Stock",
            f"{variant.product.name} ({variant.label}) is down to {variant.quantity}.",
            {
                "type": Notification.Type.LOW_STOCK,
                "entity_id": str(variant.id),
                "entity_type": "variant",
                "quantity": variant.quantity,
                "low_stock_threshold": variant.low_stock_threshold,
            },
        )
