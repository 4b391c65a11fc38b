"""
リマインダー機能パッケージ。

目的:
    - reminders 関連の model / repo / 繰り返し計算 / スケジューラ / service を1箇所へ集約する。
    - 直下ファイル数を減らし、責務を見つけやすくする。
"""

from __future__ import annotations
