import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from medicare.auth.dependencies import Principal, get_current_principal, require_roles
from medicare.auth.jwt_handler import create_access_token, decode_access_token
from medicare.core import config


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trips_subject_and_role() -> None:
    payload = decode_access_token(create_access_token(12, 'doctor'))

    assert payload['sub'] == '12'
    assert payload['role'] == 'doctor'


def test_get_current_principal_returns_principal() -> None:
    principal = get_current_principal(_credentials(create_access_token(5, 'admin')))

    assert principal == Principal(user_id=5, role='admin')
    assert principal.is_admin


def test_get_current_principal_rejects_expired_token() -> None:
    token = create_access_token(5, 'patient', expires_minutes=-1)

    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(_credentials(token))

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


@pytest.mark.parametrize(
    ('claims', 'detail'),
    [
        ({'sub': 'abc', 'role': 'patient'}, 'Invalid token subject'),
        ({'role': 'patient'}, 'Invalid token subject'),
        ({'sub': '3', 'role': 'nurse'}, 'Invalid token role'),
    ],
)
def test_get_current_principal_rejects_bad_claims(claims: dict, detail: str) -> None:
    token = jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(_credentials(token))

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == detail


def test_require_roles_blocks_other_roles() -> None:
    dependency = require_roles('admin')

    assert dependency(Principal(user_id=1, role='admin')).user_id == 1
    with pytest.raises(HTTPException) as exception_info:
        dependency(Principal(user_id=2, role='doctor'))

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Access denied'
