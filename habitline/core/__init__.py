"""
共通部品パッケージ（時刻 / JSON / 時計）。
"""

from __future__ import annotations
