"""Tests for the search toolkit.

The remote service is replaced by ``conftest.FakeSearchService`` behind an
``httpx.MockTransport``, so the suite runs without network access.
"""
