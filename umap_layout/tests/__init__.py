"""
Test Suite for umap_layout to ensure things are working as expected.

The test suite comprises multiple testing modules,
including multiple test cases related to a specific
set of layout optimization features under test.

Backend
-------
pytest is the reference backend for testing environment and execution.

Fixtures
--------
Session fixtures (graphs, initial embeddings and parameters) live in
conftest.py and are shared by all the testing modules.
"""
