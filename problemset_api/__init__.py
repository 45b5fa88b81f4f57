"""
Problemset API - HTTP front end for a key-value store of problem documents.

Provides endpoints for:
- Listing stored problems
- Reading, submitting and deleting problems (writes gated by a shared password)
- Rendering a problem as a Markdeep page
"""

__version__ = "0.1.0"
