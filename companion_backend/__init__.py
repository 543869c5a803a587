"""
Backend package for the companion catalog.

Lists companions, records study sessions and bookmarks, and enforces
per-plan creation quotas on top of an external SQL store and an external
identity provider.
"""
