# src/config/input_keys.py — v1
"""Input-key catalogue: scene fields, product categories and their labels.

Keys are the snake_case category names used by input presets and the
GenerationInput snapshot. ALL_INPUT_KEYS order is the order in which
labelled images are sent to the provider.
"""

from __future__ import annotations

SCENE_KEYS: tuple[str, ...] = ("dollhouse_view", "real_photo", "mood_board")

PRODUCT_CATEGORIES: tuple[str, ...] = (
    "faucets",
    "lightings",
    "lvps",
    "mirrors",
    "paints",
    "robe_hooks",
    "shelves",
    "shower_glasses",
    "shower_systems",
    "floor_tiles",
    "wall_tiles",
    "shower_wall_tiles",
    "shower_floor_tiles",
    "shower_curb_tiles",
    "toilet_paper_holders",
    "toilets",
    "towel_bars",
    "towel_rings",
    "tub_doors",
    "tub_fillers",
    "tubs",
    "vanities",
    "wallpapers",
)

ALL_INPUT_KEYS: tuple[str, ...] = SCENE_KEYS + PRODUCT_CATEGORIES

INPUT_KEY_LABELS: dict[str, str] = {
    "dollhouse_view": "Dollhouse view (scene)",
    "real_photo": "Real photo (scene)",
    "mood_board": "Mood board (scene)",
    "faucets": "Faucet",
    "lightings": "Lighting",
    "lvps": "LVP",
    "mirrors": "Mirror",
    "paints": "Paint",
    "robe_hooks": "Robe hook",
    "shelves": "Shelf",
    "shower_glasses": "Shower glass",
    "shower_systems": "Shower system",
    "floor_tiles": "Floor tile",
    "wall_tiles": "Wall tile",
    "shower_wall_tiles": "Shower wall tile",
    "shower_floor_tiles": "Shower floor tile",
    "shower_curb_tiles": "Shower curb tile",
    "toilet_paper_holders": "Toilet paper holder",
    "toilets": "Toilet",
    "towel_bars": "Towel bar",
    "towel_rings": "Towel ring",
    "tub_doors": "Tub door",
    "tub_fillers": "Tub filler",
    "tubs": "Tub",
    "vanities": "Vanity",
    "wallpapers": "Wallpaper",
}

# Upstream-reference field on a step -> scene key whose value it overrides.
SCENE_REFERENCE_FIELDS: dict[str, str] = {
    "dollhouse_view_from_step": "dollhouse_view",
    "real_photo_from_step": "real_photo",
    "mood_board_from_step": "mood_board",
}

# Appends the referenced step's output as an extra image instead of
# overriding a scene field.
ARBITRARY_REFERENCE_FIELD = "arbitrary_image_from_step"

UPSTREAM_REFERENCE_FIELDS: tuple[str, ...] = (
    *SCENE_REFERENCE_FIELDS,
    ARBITRARY_REFERENCE_FIELD,
)
