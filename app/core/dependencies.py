from fastapi import HTTPException, status, Header
from typing import Optional
import logging
import secrets

from app.core.config import get_settings

logger = logging.getLogger(__name__)


async def get_current_member_id(
    x_member_id: Optional[str] = Header(None, alias="X-Member-ID")
) -> int:
    """
    Obtiene el ID del miembro autenticado del header X-Member-ID.

    La autenticación la resuelve el gateway/proveedor de identidad; este
    servicio solo recibe la identidad ya verificada.

    Raises:
        HTTPException: Si el header falta o no es un entero positivo
    """
    if not x_member_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Identidad de miembro requerida. Incluir header X-Member-ID"
        )
    try:
        member_id = int(x_member_id)
    except (ValueError, TypeError):
        logger.warning(f"Formato inválido para X-Member-ID: {x_member_id}")
        member_id = 0
    if member_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Member-ID debe ser un entero positivo"
        )
    return member_id


async def verify_admin_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")):
    """
    Verifica que el API key del header coincida con ADMIN_API_KEY.

    Protege los endpoints de administración (horarios, cancelación de clases,
    vista completa de la lista de espera).

    Raises:
        HTTPException: Si el API key es inválido o no se proporciona
    """
    settings = get_settings()

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key requerida. Incluir header X-API-Key"
        )

    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_API_KEY no configurada en el servidor"
        )

    if not secrets.compare_digest(x_api_key, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key inválida"
        )
