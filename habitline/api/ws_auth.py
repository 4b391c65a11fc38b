"""
WebSocket用のBearer認証ユーティリティ

WebSocket接続時にAuthorizationヘッダーのBearerトークンを検証する。
認証失敗時はWS_1008_POLICY_VIOLATIONでコネクションをクローズする。
"""

from __future__ import annotations

from fastapi import WebSocket, status

from habitline.api.http_auth import verify_bearer_token_from_header


async def authenticate_ws_bearer(websocket: WebSocket) -> bool:
    """
    WebSocket接続のBearerトークンを検証する。

    認証失敗時はWS_1008_POLICY_VIOLATIONでクローズしてFalseを返す。
    """
    # WebSocketはHTTPステータスを返せないため、認証失敗は規約違反としてcloseする
    if verify_bearer_token_from_header(websocket.headers.get("Authorization")):
        return True

    await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return False
