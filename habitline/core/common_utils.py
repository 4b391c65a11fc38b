"""
共通ユーティリティ（JSON の最小セット）。

方針:
    - 「何でも入れる utils」にはしない。DB 保存形式に関わるものだけを扱う。
"""

from __future__ import annotations

import json
from typing import Any


def json_dumps(payload: Any) -> str:
    """DB保存向けにJSONを安定した形式でダンプする（日本語保持）。"""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def parse_json_int_list(text_in: str | None) -> list[int]:
    """JSON文字列を list[int] として読む（失敗時は空list）。"""
    s = str(text_in or "").strip()
    if not s:
        return []
    try:
        obj = json.loads(s)
    except json.JSONDecodeError:
        return []
    if not isinstance(obj, list):
        return []
    out: list[int] = []
    for item in obj:
        if isinstance(item, bool) or not isinstance(item, int):
            continue
        out.append(int(item))
    return out
