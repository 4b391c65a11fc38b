"""
リマインダー対象エンティティ（タスク / 習慣 / 振り返り / メモ / 問いかけ）。
"""

from __future__ import annotations
