"""HTTP endpoint module for doomstream.

The dispatcher (FastAPI app), the bounded request envelope, and the
per-viewer MJPEG streaming loop.
"""
