"""Shared fixtures: in-memory images and a scripted mockup generator."""

import asyncio
import io
from dataclasses import dataclass
from typing import List

import pytest
from PIL import Image

from mockupgen.codec import decode_image_bytes, to_data_uri
from mockupgen.prompts import MockupCategory


def make_png(width: int, height: int, mode: str = "RGBA", color=(200, 30, 30, 128)) -> bytes:
    img = Image.new(mode, (width, height), color if mode == "RGBA" else color[:3])
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def open_data_uri(data_uri: str) -> Image.Image:
    img = Image.open(io.BytesIO(decode_image_bytes(data_uri)))
    img.load()
    return img


async def settle(rounds: int = 20) -> None:
    """Let every ready task run until it blocks again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass
class GenerateCall:
    source_image: str
    category: MockupCategory
    description: str
    future: asyncio.Future


class ScriptedGenerator:
    """Every generate() call blocks on a future the test resolves by hand."""

    def __init__(self) -> None:
        self.calls: List[GenerateCall] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, source_image, category, description=""):
        future = asyncio.get_running_loop().create_future()
        self.calls.append(GenerateCall(source_image, category, description, future))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return await future
        finally:
            self.in_flight -= 1


class RecordingSleep:
    def __init__(self) -> None:
        self.durations: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.durations.append(seconds)


@pytest.fixture
def png_data_uri():
    """A 64x32 half-transparent PNG logo as a data URI."""
    return to_data_uri(make_png(64, 32), "image/png")


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def sleep():
    return RecordingSleep()
