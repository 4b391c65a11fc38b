"""
実行時サポート（イベント配信 / 定期実行 / ログ設定）。
"""

from __future__ import annotations
