"""
Entity registry tests.
"""

import unittest

from habitline.entities.models import Memory, Reflection
from habitline.storage.db import session_scope
from tests.helpers import DbTestCase


class TestEntityRegistry(DbTestCase):

    def test_known_types(self):
        self.assertEqual(set(self.registry.known_types()), {"task", "habit", "reflection", "memory", "prompt"})
        self.assertTrue(self.registry.is_known("habit"))
        self.assertFalse(self.registry.is_known("invoice"))
        self.assertFalse(self.registry.is_known(""))

    def test_find_returns_display_name(self):
        task_id = self.add_task(title="  Buy   milk ")
        habit_id = self.add_habit(name="Meditate")
        with session_scope() as db:
            task = self.registry.find(db, "task", task_id)
            habit = self.registry.find(db, "habit", habit_id)
        self.assertEqual((task.display_name, task.user_id), ("Buy milk", "u1"))
        self.assertEqual(habit.display_name, "Meditate")

    def test_memory_falls_back_to_content(self):
        with session_scope() as db:
            row = Memory(user_id="u1", title="", content="remember the keys")
            db.add(row)
            db.flush()
            memory_id = int(row.id)
        with session_scope() as db:
            self.assertEqual(self.registry.find(db, "memory", memory_id).display_name, "remember the keys")

    def test_long_text_is_truncated(self):
        with session_scope() as db:
            row = Reflection(user_id="u1", text="x" * 200)
            db.add(row)
            db.flush()
            reflection_id = int(row.id)
        with session_scope() as db:
            name = self.registry.find(db, "reflection", reflection_id).display_name
        self.assertEqual(len(name), 80)
        self.assertTrue(name.endswith("…"))

    def test_missing_and_unknown(self):
        with session_scope() as db:
            self.assertIsNone(self.registry.find(db, "task", 12345))
            with self.assertRaises(KeyError):
                self.registry.find(db, "invoice", 1)


if __name__ == "__main__":
    unittest.main()
