"""
Admin endpoints for API key management
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, Response
from typing import Optional

from verifylens.api.dependencies import get_api_key_service, require_admin_token
from verifylens.schemas.api_key import APIKeyIssueRequest, APIKeyResponse
from verifylens.services.api_key_service import APIKeyService, IssueFailure

router = APIRouter(dependencies=[Depends(require_admin_token)])


@router.post("/accounts/{account_id}/api-key", response_model=APIKeyResponse)
async def issue_api_key(
    account_id: str,
    body: Optional[APIKeyIssueRequest] = None,
    api_key_service: APIKeyService = Depends(get_api_key_service),
):
    """
    Issue an API key for an account

    - 201 with the new key
    - 200 with the new key when `regenerate` replaced an existing one
    - 409 if a key exists and `regenerate` is false

    **Important**: The API key is only shown once. Store it securely!
    """
    result = await api_key_service.issue(account_id, regenerate=bool(body and body.regenerate))

    if result.failure == IssueFailure.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "User not found", "message": f"No account with id {account_id}"},
        )
    if result.failure == IssueFailure.CONFLICT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "API key already exists",
                "message": "Set regenerate: true to create a new key",
            },
        )

    payload = APIKeyResponse(
        message="API key regenerated successfully" if result.regenerated else "API key generated successfully",
        api_key=result.api_key,
        client_id=result.credential_id,
        created_at=result.created_at,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if result.regenerated else status.HTTP_201_CREATED,
        content=payload.model_dump(mode="json", by_alias=True),
    )


@router.delete("/accounts/{account_id}/api-key", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_api_key(
    account_id: str,
    api_key_service: APIKeyService = Depends(get_api_key_service),
):
    """
    Revoke an account's API key

    The credential is deactivated, not deleted.
    """
    if not await api_key_service.revoke(account_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Not found", "message": "Account has no API key"},
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
