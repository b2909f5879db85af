# tests/conftest.py
import os, sys
import asyncio
from contextlib import contextmanager
from types import SimpleNamespace

import pytest

BACKEND = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)


@pytest.fixture
def asyncio_event_loop():
    loop = asyncio.new_event_loop()
    try:
        yield loop
    finally:
        loop.close()


class FakeConn:
    """Records SQL and answers every query with the same rows."""

    def __init__(self, rows=None):
        self.rows = rows or []
        self.calls = []

    def execute(self, sql, params=None):
        self.calls.append((sql, params))
        return SimpleNamespace(
            fetchall=lambda: list(self.rows),
            fetchone=lambda: self.rows[0] if self.rows else None,
        )


class FakePool:
    def __init__(self, rows=None):
        self.conn = FakeConn(rows)

    @contextmanager
    def connection(self):
        yield self.conn


@pytest.fixture
def fake_pool():
    return FakePool


class FakeModel:
    """
    Stands in for llm.generate: JSON-mode calls get `intent`, everything else
    gets the next queued answer.
    """

    def __init__(self, intent='{"intent": "general_question"}', answers=None):
        self.intent = intent
        self.answers = list(answers or ["Here you go! 🎉"])
        self.prompts = []

    async def __call__(self, prompt, json_mode=False, **kwargs):
        self.prompts.append((prompt, json_mode))
        if json_mode:
            if isinstance(self.intent, Exception):
                raise self.intent
            return self.intent
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    @property
    def answer_prompts(self):
        return [p for p, json_mode in self.prompts if not json_mode]


@pytest.fixture
def fake_model(monkeypatch):
    import campus_bot.intents as intents_mod
    import campus_bot.assistant as assistant_mod
    import campus_bot.planner as planner_mod

    def install(**kwargs):
        model = FakeModel(**kwargs)
        monkeypatch.setattr(intents_mod, "generate", model)
        monkeypatch.setattr(assistant_mod, "generate", model)
        monkeypatch.setattr(planner_mod, "generate", model)
        return model

    return install
