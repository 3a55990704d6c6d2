"""
Core application engine for orchestrating a download.

The `DownloadManager` validates the environment (directory, disk space) and
hands the request to either the aria2c subprocess or the native segmented
engine.
"""
