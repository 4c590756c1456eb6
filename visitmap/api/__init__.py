"""
API module for VisitMap.

Provides REST endpoints for:
- Area listing with visitor counts
- Visitor listing
- Marking an area as visited
"""

from visitmap.api.areas import areas_bp

__all__ = ['areas_bp']
