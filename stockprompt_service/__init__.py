"""
StockPrompt batch metadata service package.

Exposes reusable primitives for normalizing uploads into units of work,
draining them through the generation backend one at a time, editing and
refining the results, and serving the FastAPI application.
"""

