"""Dependencies de autenticación para FastAPI"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict
from shared.auth.jwt_handler import verify_token


security = HTTPBearer()


def user_from_payload(payload: Dict) -> Optional[Dict]:
    user_id = payload.get('sub') or payload.get('user_id')
    if not user_id:
        return None
    return {
        'user_id': user_id,
        'email': payload.get('email'),
        'role': payload.get('role', 'user'),
        'venue_id': payload.get('venue_id'),
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict:
    '''Obtener usuario actual desde token JWT'''
    payload = await verify_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido o expirado',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    user = user_from_payload(payload)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido: falta user_id',
        )
    return user


async def get_current_admin_or_coordinator(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Verificar que el usuario sea admin O coordinator'''
    role = current_user.get('role')
    if role not in ['admin', 'coordinator']:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Acceso denegado. Requiere rol de admin o coordinator, tu rol es: {role}"
        )
    return current_user


async def get_current_scanner(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Verificar que el usuario sea scanner, coordinator o admin'''
    role = current_user.get('role')
    if role not in ['scanner', 'admin', 'coordinator']:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Se requieren permisos de scanner'
        )
    return current_user


def ensure_venue_access(current_user: Dict, venue_id: str) -> None:
    '''Solo admin puede operar sobre cualquier venue; el resto solo sobre el suyo'''
    if current_user.get('role') == 'admin':
        return
    if current_user.get('venue_id') != venue_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='No tienes acceso a este venue'
        )


def resolve_operator_venue(current_user: Dict, venue_id: Optional[str] = None) -> str:
    '''Venue del operador: el del token, o el indicado si es admin'''
    if venue_id:
        ensure_venue_access(current_user, venue_id)
        return venue_id
    if not current_user.get('venue_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='El token no tiene venue asociado; indica venue_id'
        )
    return current_user['venue_id']
