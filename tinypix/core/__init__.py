"""
Core pipeline for the TinyPix project.

- codec: the Pillow/pngquant compression capability
- handles: owned content and revocable preview handles
- intake: validation and item creation
- compressors: local and remote compression backends
- orchestrator: per-item status tracking and dispatch
- results: downloads, archives and size formatting
- preferences: persisted quality settings
"""
