"""
Habitline: 習慣・タスクなどに紐づくリマインダーの発火と配信を行うバックエンド。
"""

from __future__ import annotations
