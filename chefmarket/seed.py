"""
Starter catalog of chefs and menus loaded into an empty store.
"""

from __future__ import annotations

import logging

from chefmarket.db import DbClient

logger = logging.getLogger(__name__)

_IMAGE_PARAMS = "?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=500&q=80"


def _unsplash(photo_id: str) -> str:
    return f"https://images.unsplash.com/{photo_id}{_IMAGE_PARAMS}"


CHEFS = [
    {
        "name": "Chef Marco",
        "profile_image": _unsplash("photo-1577219491135-ce391730fb2c"),
        "cuisine": "Italian Cuisine",
        "price": 60,
        "description": (
            "Specializing in authentic Italian cuisine with 10+ years experience "
            "in Michelin-starred restaurants."
        ),
        "rating": "4.9",
        "review_count": 24,
    },
    {
        "name": "Chef Sophia",
        "profile_image": _unsplash("photo-1581299894007-aaa50297cf16"),
        "cuisine": "French Cuisine",
        "price": 75,
        "description": (
            "Classically trained in French cuisine with a modern twist. Expert in "
            "creating elegant dining experiences."
        ),
        "rating": "5.0",
        "review_count": 36,
    },
    {
        "name": "Chef Raj",
        "profile_image": _unsplash("photo-1622021142947-da7dedc7c39a"),
        "cuisine": "Indian Cuisine",
        "price": 55,
        "description": (
            "Expert in authentic Indian flavors with contemporary presentation. "
            "Creates personalized spice blends."
        ),
        "rating": "4.8",
        "review_count": 19,
    },
    {
        "name": "Chef Yuki",
        "profile_image": _unsplash("photo-1556910103-1c02745aae4d"),
        "cuisine": "Japanese Cuisine",
        "price": 80,
        "description": (
            "Sushi master with expertise in traditional and fusion Japanese "
            "cuisine. Known for artistic presentation."
        ),
        "rating": "4.9",
        "review_count": 28,
    },
    {
        "name": "Chef Elena",
        "profile_image": _unsplash("photo-1607631568010-a87245c0dbd8"),
        "cuisine": "Mediterranean Cuisine",
        "price": 65,
        "description": (
            "Mediterranean cuisine expert focusing on fresh, healthy ingredients. "
            "Specializes in Greek and Spanish dishes."
        ),
        "rating": "4.7",
        "review_count": 22,
    },
    {
        "name": "Chef Thomas",
        "profile_image": _unsplash("photo-1583394293214-28ded15ee548"),
        "cuisine": "Modern European",
        "price": 90,
        "description": (
            "Contemporary European cuisine with molecular gastronomy techniques. "
            "Creates immersive dining experiences."
        ),
        "rating": "4.8",
        "review_count": 31,
    },
]

MENUS = [
    {
        "name": "Italian Feast",
        "image": _unsplash("photo-1514326640560-7d063ef2aed5"),
        "description": (
            "A traditional Italian dining experience featuring handmade pasta, "
            "authentic sauces, and classic desserts."
        ),
        "courses": "3 courses",
        "guest_range": "4-12 guests",
        "price": 55,
        "items": [
            "Antipasti selection with cured meats and cheeses",
            "Fresh handmade pasta with choice of sauces",
            "Traditional tiramisu or panna cotta",
        ],
    },
    {
        "name": "Asian Fusion",
        "image": _unsplash("photo-1546833998-877b37c2e5c6"),
        "description": (
            "A creative blend of flavors from across Asia, combining traditional "
            "techniques with modern presentation."
        ),
        "courses": "4 courses",
        "guest_range": "4-10 guests",
        "price": 70,
        "items": [
            "Selection of dumplings and spring rolls",
            "Sushi platter and steamed bao buns",
            "Miso glazed black cod or teriyaki beef",
        ],
    },
    {
        "name": "Mediterranean Tapas",
        "image": _unsplash("photo-1544025162-d76694265947"),
        "description": (
            "A social dining experience featuring a variety of small plates "
            "inspired by Mediterranean coastal cuisine."
        ),
        "courses": "Multiple small plates",
        "guest_range": "6-15 guests",
        "price": 60,
        "items": [
            "Greek mezze with hummus and tzatziki",
            "Spanish tapas including patatas bravas",
            "Seafood paella and grilled vegetables",
        ],
    },
]


def seed_catalog(db: DbClient) -> bool:
    """
    Insert the starter chefs and menus. Each table is only seeded while it
    is empty, so repeated calls are no-ops. Returns True if anything was added.
    """
    seeded = False
    if not db.list_chefs():
        for chef in CHEFS:
            db.create_chef(**chef)
        logger.info("Seeded %d chefs", len(CHEFS))
        seeded = True
    if not db.list_menus():
        for menu in MENUS:
            db.create_menu(**{**menu, "items": list(menu["items"])})
        logger.info("Seeded %d menus", len(MENUS))
        seeded = True
    return seeded
