"""Centralized constants for content categories and cache keys.

This module is the single source of truth for the category registry and
the key schema shared by the content cache and the analytics counters.
"""

import re
from datetime import date
from enum import Enum
from typing import FrozenSet, Pattern

# =============================================================================
# CONTENT CATEGORIES
# =============================================================================


class ContentCategory(str, Enum):
    """Closed set of content categories.

    Adding a category here is the only change needed for loaders, key
    prefixes and trending cleanup to pick it up.
    """
    AGENTS = "agents"
    MCP = "mcp"
    RULES = "rules"
    COMMANDS = "commands"
    HOOKS = "hooks"
    STATUSLINES = "statuslines"
    SKILLS = "skills"


ALL_CATEGORIES: FrozenSet[str] = frozenset(c.value for c in ContentCategory)

# Heavy fields stripped from list/metadata payloads
FULL_CONTENT_FIELDS: FrozenSet[str] = frozenset([
    'content',
    'code_blocks',
    'codeBlocks',
    'installation',
    'features',
    'use_cases',
    'useCases',
    'configuration',
    'troubleshooting',
    'examples',
])

# =============================================================================
# SLUG VALIDATION
# =============================================================================

SLUG_MAX_LENGTH = 200
SLUG_PATTERN: Pattern[str] = re.compile(r"^[a-zA-Z0-9\-_/]+$")

# =============================================================================
# KEY SCHEMA
# =============================================================================

CONTENT_PREFIX = "content"
VIEWS_PREFIX = "views"
COPIES_PREFIX = "copies"
TRENDING_PREFIX = "trending"
POPULAR_PREFIX = "popular"
COPIED_PREFIX = "copied"


def content_list_key(category: str) -> str:
    return f"{CONTENT_PREFIX}:{category}:list"


def content_meta_key(category: str, slug: str) -> str:
    return f"{CONTENT_PREFIX}:{category}:meta:{slug}"


def content_full_key(category: str, slug: str) -> str:
    return f"{CONTENT_PREFIX}:{category}:full:{slug}"


def content_category_pattern(category: str) -> str:
    return f"{CONTENT_PREFIX}:{category}:*"


def view_key(category: str, slug: str) -> str:
    return f"{VIEWS_PREFIX}:{category}:{slug}"


def daily_view_key(category: str, slug: str, day: date) -> str:
    return f"{VIEWS_PREFIX}:daily:{category}:{slug}:{day.isoformat()}"


def daily_view_pattern(category: str, slug: str) -> str:
    return f"{VIEWS_PREFIX}:daily:{category}:{slug}:*"


def copy_key(category: str, slug: str) -> str:
    return f"{COPIES_PREFIX}:{category}:{slug}"


def trending_key(category: str, day: date) -> str:
    return f"{TRENDING_PREFIX}:{category}:{day.isoformat()}"


def trending_pattern(category: str) -> str:
    return f"{TRENDING_PREFIX}:{category}:*"


def popular_key(category: str) -> str:
    return f"{POPULAR_PREFIX}:{category}:all"


def copied_key(category: str) -> str:
    return f"{COPIED_PREFIX}:{category}:all"


def item_id(category: str, slug: str) -> str:
    """Public identifier used by batch responses ("category:slug")."""
    return f"{category}:{slug}"
