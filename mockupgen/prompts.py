"""
prompts.py — Mockup categories and the prompt sent with every generation.

Each category maps to a fixed scene description; the user's optional style
text is appended, falling back to DEFAULT_STYLE when empty.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict


class MockupCategory(str, Enum):
    STATIONERY = "Stationery"
    FACADE     = "Shop Facade"
    PACKAGING  = "Product Packaging"
    TSHIRT     = "T-Shirt"
    HOODIE     = "Hoodie"
    MUG        = "Mug"
    MOBILE     = "Smartphone"
    DESKTOP    = "Desktop Monitor"
    TABLET     = "Tablet"
    POSTER     = "Wall Poster"
    TOTE_BAG   = "Tote Bag"

    @property
    def slug(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: str) -> "MockupCategory":
        """Accept an enum name ('tote_bag'), slug ('tote-bag') or label ('Tote Bag')."""
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        for member in cls:
            if key in (member.name.lower(), member.value.lower().replace(" ", "_").replace("-", "_")):
                return member
        raise ValueError(f"Unknown mockup category: {value!r}")


MOCKUP_SCENES: Dict[MockupCategory, str] = {
    MockupCategory.STATIONERY: "branding stationery set on a desk, business cards, notebook, clean aesthetic, overhead view",
    MockupCategory.FACADE:     "modern shop facade sign, 3d logo signage, street view, photorealistic, cinematic lighting",
    MockupCategory.PACKAGING:  "modern product packaging box, cardboard texture, studio lighting, depth of field",
    MockupCategory.TSHIRT:     "cotton t-shirt on a hanger or model, fabric texture, realistic apparel mockup, studio light",
    MockupCategory.HOODIE:     "hoodie sweatshirt, high quality fabric, studio mockup, soft lighting",
    MockupCategory.MUG:        "ceramic coffee mug on a wooden table, warm lighting, photorealistic, steam rising",
    MockupCategory.MOBILE:     "smartphone screen mockup held in hand or on table, blurred background, high tech vibe",
    MockupCategory.DESKTOP:    "modern desktop computer monitor on a sleek office desk, workspace context, professional setup",
    MockupCategory.TABLET:     "tablet device on a coffee shop table, natural lighting, sharp screen details",
    MockupCategory.POSTER:     "framed poster hanging on a modern interior wall, art gallery style, soft shadows",
    MockupCategory.TOTE_BAG:   "canvas tote bag hanging or being carried, realistic fabric folds, natural texture",
}

DEFAULT_STYLE = "Professional, clean, realistic lighting"


def build_prompt(category: MockupCategory, description: str = "") -> str:
    scene = MOCKUP_SCENES[category]
    style = (description or "").strip() or DEFAULT_STYLE
    return (
        "You are a professional product photographer.\n"
        "Task: Create a photorealistic product mockup.\n"
        "\n"
        f"Context: {scene}.\n"
        f"Style: {style}.\n"
        "\n"
        "Instruction: Apply the provided logo/design (Input Image) onto the product in the scene naturally.\n"
        "Ensure correct perspective, lighting, and texture blending."
    )
