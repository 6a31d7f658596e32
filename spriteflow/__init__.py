"""
SpriteFlow worker: node-graph sprite generation.

Prompt / Reference → Preview (Gemini image) → Animation (Veo video) → Cut (ffmpeg frames)
"""

__version__ = "0.1.0"
