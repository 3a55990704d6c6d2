"""
txdl - a download accelerator for HTTP/HTTPS, magnet links and torrent files.
"""

__version__ = "0.1.0"
