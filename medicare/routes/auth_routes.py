from fastapi import APIRouter, Depends

from medicare.auth.dependencies import Principal, get_current_principal
from medicare.core.responses import ok

router = APIRouter(tags=['auth'])


@router.get("/me")
def me(principal: Principal = Depends(get_current_principal)):
    return ok({"user_id": principal.user_id, "role": principal.role})
