"""doomstream -- interactive program sessions streamed over HTTP.

Each session owns one instance of an external interactive program,
captures its rendered output as still images, re-encodes them as an
MJPEG stream any browser can show in an ``<img>`` tag, and injects
keyboard input posted by the viewer back into the running program.
"""

__version__ = "0.1.0"
