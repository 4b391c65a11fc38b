"""
HTTP 用の認証ユーティリティ（Bearer トークン / ユーザー識別）。

方針:
    - すべての API で Authorization: Bearer <token> を必須にする。
    - ユーザーの識別は X-User-Id ヘッダで受け取る（アカウント管理はこのサービスの責務外）。
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from habitline.config import get_token


USER_ID_HEADER = "X-User-Id"


def verify_bearer_token_from_header(auth_header: str | None) -> bool:
    """Authorization ヘッダの Bearer を検証し、有効なら True。"""

    raw = str(auth_header or "").strip()
    if not raw:
        return False

    # --- 形式: "Bearer <TOKEN>" ---
    if not raw.lower().startswith("bearer "):
        return False
    provided = raw.split(" ", 1)[1].strip()
    expected = get_token()
    return bool(provided and provided == expected)


def require_bearer_only(request: Request) -> None:
    """HTTP リクエストで Bearer 認証を必須にする。"""

    if verify_bearer_token_from_header(request.headers.get("Authorization")):
        return

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication token")


def require_user_id(request: Request) -> str:
    """X-User-Id ヘッダからユーザーIDを返す（無ければ 401）。"""

    user_id = str(request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"{USER_ID_HEADER} header is required")
    return user_id
