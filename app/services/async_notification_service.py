"""
AsyncOneSignalService - envío de push y email con la REST API de OneSignal.

Los miembros se identifican en OneSignal por su external_user_id (el ID de
miembro como texto). Ningún método lanza excepciones: todos devuelven un dict
``{"success": bool, ...}`` y registran el error.
"""

import httpx
import logging
import json
from typing import List, Dict, Any, Optional

from app.core.config import get_settings

logger = logging.getLogger("async_onesignal_service")


class AsyncOneSignalService:
    """
    Cliente async de OneSignal usando httpx.AsyncClient.

    Métodos principales:
    - send_to_users() - push a una lista de miembros
    - send_email_to_users() - email a una lista de miembros
    """

    def __init__(self, app_id: Optional[str], api_key: Optional[str], timeout: float = 10.0):
        """
        Args:
            app_id: OneSignal App ID
            api_key: OneSignal REST API Key
            timeout: Timeout de cada llamada HTTP en segundos
        """
        self.app_id = app_id
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = "https://onesignal.com/api/v1/notifications"
        self.headers = {
            "Authorization": f"Basic {self.api_key}",
            "Content-Type": "application/json; charset=utf-8"
        }

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id and self.api_key)

    async def send_to_users(
        self,
        user_ids: List[str],
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Envía una notificación push a varios miembros por su external_user_id.

        Returns:
            Dict con resultado:
            - success: bool
            - notification_id: str (si exitoso)
            - recipients: int (si exitoso)
            - errors: List[str] (si falla)
        """
        if not user_ids:
            return {"success": False, "errors": ["No user IDs provided"]}

        payload = {
            "app_id": self.app_id,
            "include_external_user_ids": user_ids,
            "channel_for_external_user_ids": "push",
            "headings": {"en": title, "es": title},
            "contents": {"en": message, "es": message},
            "data": data or {}
        }
        logger.info(f"Sending push notification to {len(user_ids)} users: {title}")
        return await self._post(payload)

    async def send_email_to_users(
        self,
        user_ids: List[str],
        subject: str,
        body: str
    ) -> Dict[str, Any]:
        """
        Envía un email a varios miembros por su external_user_id.

        OneSignal resuelve la dirección de correo registrada para cada usuario.
        """
        if not user_ids:
            return {"success": False, "errors": ["No user IDs provided"]}

        payload = {
            "app_id": self.app_id,
            "include_external_user_ids": user_ids,
            "channel_for_external_user_ids": "email",
            "email_subject": subject,
            "email_body": f"<p>{body}</p>",
        }
        logger.info(f"Sending email notification to {len(user_ids)} users: {subject}")
        return await self._post(payload)

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured:
            logger.warning("OneSignal no configurado - notificación omitida")
            return {"success": False, "errors": ["OneSignal not configured"]}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.base_url,
                    headers=self.headers,
                    content=json.dumps(payload),
                    timeout=self.timeout
                )
        except httpx.HTTPError as e:
            error_msg = f"Error sending notification: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return {"success": False, "errors": [error_msg]}

        logger.debug(f"OneSignal response: {response.status_code} - {response.text}")

        if response.status_code == 200:
            result = response.json()
            if result.get("errors"):
                # OneSignal responde 200 con errores cuando ningún destinatario es válido
                logger.warning(f"OneSignal devolvió errores: {result['errors']}")
                return {"success": False, "errors": result["errors"]}
            return {
                "success": True,
                "notification_id": result.get("id"),
                "recipients": result.get("recipients")
            }

        error_msg = f"OneSignal error: {response.status_code} - {response.text}"
        logger.error(error_msg)
        return {"success": False, "errors": [error_msg]}


_settings = get_settings()
async_notification_service = AsyncOneSignalService(
    _settings.ONESIGNAL_APP_ID,
    _settings.ONESIGNAL_REST_API_KEY,
    timeout=_settings.ONESIGNAL_TIMEOUT_SECONDS,
)
