import asyncio
import uuid
from datetime import datetime

import pytest

from core.storage import Session
from skills.schema import build_schema


class FakeTextGen:
    """Stands in for TextGenClient; replays canned replies in order."""

    def __init__(self, replies=None, delay: float = 0.0, error: Exception | None = None):
        self.replies = list(replies or [])
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []
        self.active = 0
        self.max_active = 0

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.replies.pop(0) if self.replies else ""
        finally:
            self.active -= 1

    @property
    def calls(self) -> int:
        return len(self.prompts)


@pytest.fixture
def people_records():
    return [
        {"name": "ann", "age": 20, "member": True, "joined": datetime(2021, 1, 5)},
        {"name": "bob", "age": 25, "member": False, "joined": datetime(2021, 3, 9)},
        {"name": "cid", "age": 30, "member": True, "joined": datetime(2022, 7, 1)},
        {"name": "dee", "age": 90, "member": True, "joined": datetime(2023, 2, 14)},
    ]


@pytest.fixture
def loaded_session(people_records):
    sess = Session(f"test-{uuid.uuid4()}")
    sess.load(build_schema(people_records, "people"), people_records)
    return sess
