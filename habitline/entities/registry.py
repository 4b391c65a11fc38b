"""
エンティティ種別の登録表。

目的:
    - reminders.entity_type と「ID で引く手段」の対応を登録表で管理する。
    - スケジューラに `if entity_type == ...` を書かない。新しい種別は登録表に1行足すだけにする。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from habitline.entities.models import Habit, Memory, Prompt, Reflection, Task


# 表示名の最大文字数（本文を表示名に使う種別向け）
_DISPLAY_NAME_MAX_CHARS = 80


@dataclass(frozen=True)
class EntityRef:
    """リマインダーから見たエンティティの軽量値オブジェクト。"""

    entity_type: str
    entity_id: int
    user_id: Optional[str]
    display_name: str

    def is_owned_by(self, user_id: str) -> bool:
        """所有者を持たない種別（prompt など）は誰のものでもあるとみなす。"""

        return self.user_id is None or str(self.user_id) == str(user_id)


class EntityLookup:
    """ORM モデル1つ分の「ID で引く + 表示名を読む」能力。"""

    def __init__(self, *, entity_type: str, model: Any, display_attrs: Iterable[str]) -> None:
        self.entity_type = str(entity_type)
        self.model = model
        self.display_attrs = tuple(display_attrs)

    def find_by_id(self, session: Session, entity_id: int) -> EntityRef | None:
        """ID でエンティティを引く。存在しなければ None。"""

        row = session.get(self.model, int(entity_id))
        if row is None:
            return None
        return EntityRef(
            entity_type=self.entity_type,
            entity_id=int(entity_id),
            user_id=getattr(row, "user_id", None),
            display_name=self._display_name(row),
        )

    def _display_name(self, row: Any) -> str:
        # --- 先に見つかった非空の属性を表示名にする ---
        for attr in self.display_attrs:
            value = " ".join(str(getattr(row, attr, "") or "").split())
            if value:
                if len(value) > _DISPLAY_NAME_MAX_CHARS:
                    return value[: _DISPLAY_NAME_MAX_CHARS - 1] + "…"
                return value
        return ""


class EntityRegistry:
    """entity_type タグ -> EntityLookup の固定対応表。"""

    def __init__(self, lookups: Iterable[EntityLookup]) -> None:
        self._lookups: dict[str, EntityLookup] = {}
        for lookup in lookups:
            self._lookups[lookup.entity_type] = lookup

    def is_known(self, entity_type: str) -> bool:
        """登録済みの entity_type かを返す。"""

        return str(entity_type or "") in self._lookups

    def known_types(self) -> tuple[str, ...]:
        """登録済みの entity_type 一覧を返す。"""

        return tuple(self._lookups.keys())

    def find(self, session: Session, entity_type: str, entity_id: int) -> EntityRef | None:
        """
        entity_type / entity_id からエンティティを解決する。

        未知の entity_type は KeyError を送出する（登録表の不整合はバグ扱い）。
        """

        lookup = self._lookups.get(str(entity_type or ""))
        if lookup is None:
            raise KeyError(f"unknown entity type: {entity_type}")
        return lookup.find_by_id(session, entity_id)


def build_default_registry() -> EntityRegistry:
    """既定の登録表（task/habit/reflection/memory/prompt）を作る。"""

    return EntityRegistry(
        [
            EntityLookup(entity_type="task", model=Task, display_attrs=("title",)),
            EntityLookup(entity_type="habit", model=Habit, display_attrs=("name",)),
            EntityLookup(entity_type="reflection", model=Reflection, display_attrs=("text",)),
            EntityLookup(entity_type="memory", model=Memory, display_attrs=("title", "content")),
            EntityLookup(entity_type="prompt", model=Prompt, display_attrs=("text",)),
        ]
    )


_default_registry: EntityRegistry | None = None


def get_entity_registry() -> EntityRegistry:
    """既定の EntityRegistry を返す（シングルトン）。"""

    global _default_registry
    if _default_registry is None:
        _default_registry = build_default_registry()
    return _default_registry
