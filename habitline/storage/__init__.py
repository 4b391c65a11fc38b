"""
永続化パッケージ。

目的:
    - SQLite エンジン / セッションの生成を1箇所へ集約する。
"""

from __future__ import annotations
