"""
QuizScout - pub quiz venue and event ingestion pipeline.

Scrapes venue listings from several quiz providers, normalizes them into a
canonical venue/event model and keeps the image asset tree in sync.
"""

__version__ = "0.1.0"
__app_name__ = "QuizScout"
