"""
Which records a caller may see, and in what order
"""

import math
from typing import Any, Dict, List, Optional, Tuple

PROJECT_SORT = [("order", 1), ("publishDate", -1)]
SKILL_SORT = [("category", 1), ("order", 1), ("name", 1)]
MESSAGE_SORT = [("isStarred", -1), ("createdAt", -1)]


def project_filter(
    privileged: bool,
    status: Optional[str] = None,
    featured: Optional[bool] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """Public callers only ever see published projects; admins may filter by status."""
    query: Dict[str, Any] = {}
    if not privileged:
        query["status"] = "published"
    elif status:
        query["status"] = status
    if featured is not None:
        query["featured"] = featured
    if category:
        query["category"] = category
    return query


def skill_filter(category: Optional[str] = None, is_active: Optional[bool] = None) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if category:
        query["category"] = category
    if is_active is not None:
        query["isActive"] = is_active
    return query


def message_filter(status: Optional[str] = None, is_starred: Optional[bool] = None) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if status:
        query["status"] = status
    if is_starred is not None:
        query["isStarred"] = is_starred
    return query


def page_window(page: int, limit: int) -> Tuple[int, int]:
    """(skip, limit) for a 1-based page; limit 0 means everything."""
    if limit <= 0:
        return 0, 0
    return (max(page, 1) - 1) * limit, limit


def pagination(page: int, limit: int, total: int) -> Optional[Dict[str, int]]:
    if limit <= 0:
        return None
    return {"page": max(page, 1), "limit": limit, "total": total, "pages": math.ceil(total / limit)}


def group_by_category(skills: List[dict]) -> Dict[str, List[dict]]:
    """Group already-sorted skills by category, keeping their order."""
    grouped: Dict[str, List[dict]] = {}
    for skill in skills:
        grouped.setdefault(skill["category"], []).append(skill)
    return grouped
