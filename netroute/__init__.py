"""HTTP client and server building blocks: requests, responses, credentials, tokens, uploads and MJPEG streaming."""

__version__ = "0.1.0"