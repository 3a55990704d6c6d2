"""
Assembles aria2c argument vectors from the validated configuration.

The result is always a list passed straight to the process, never a shell
string, so URLs and magnet links need no quoting.
"""

from pathlib import Path

from txdl.core.sources import is_bittorrent_source
from txdl.models.config import DownloadConfig
from txdl.utils.formatting import to_aria2_size

SESSION_FILENAME = ".txdl.session"

# Descriptions for aria2c exit statuses (aria2c 1.37 manual, "EXIT STATUS")
ARIA2_EXIT_CODES = {
    0: "all downloads were successful.",
    1: "an unknown error occurred.",
    2: "time out occurred.",
    3: "a resource was not found.",
    4: 'aria2 saw the specified number of "resource not found" errors.',
    5: "a download aborted because download speed was too slow.",
    6: "network problem occurred.",
    7: "there were unfinished downloads when aria2 was interrupted.",
    8: "remote server did not support resume when resume was required.",
    9: "there was not enough disk space available.",
    10: "piece length was different from one in .aria2 control file.",
    11: "aria2 was downloading same file at that moment.",
    12: "aria2 was downloading same info hash torrent at that moment.",
    13: "file already existed.",
    14: "renaming file failed.",
    15: "aria2 could not open existing file.",
    16: "aria2 could not create new file or truncate existing file.",
    17: "file I/O error occurred.",
    18: "aria2 could not create directory.",
    19: "name resolution failed.",
    20: "aria2 could not parse Metalink document.",
    21: "FTP command failed.",
    22: "HTTP response header was bad or unexpected.",
    23: "too many redirects occurred.",
    24: "HTTP authorization failed.",
    25: 'aria2 could not parse bencoded file (usually ".torrent" file).',
    26: '".torrent" file was corrupted or missing information that aria2 needed.',
    27: "Magnet URI was bad.",
    28: "bad/unrecognized option was given or unexpected option argument was given.",
    29: "the remote server was unable to handle the request (overload or maintenance).",
    30: "aria2 could not parse JSON-RPC request.",
    32: "checksum validation failed.",
}

BITTORRENT_OPTIONS = [
    "--seed-time=0",
    "--bt-max-peers=100",
    "--bt-request-peer-speed-limit=100K",
    "--max-upload-limit=1K",
    "--listen-port=6881-6999",
    "--enable-dht=true",
    "--bt-enable-lpd=true",
    "--bt-enable-hook-after-hash-check=true",
]


# aria2c exits with this status when SIGINT/SIGTERM stopped unfinished downloads
ARIA2_INTERRUPTED = 7


def describe_exit_code(code: int) -> str:
    return ARIA2_EXIT_CODES.get(code, f"unexpected exit status {code}.")


def session_file_for(download_dir: Path) -> Path:
    return download_dir / SESSION_FILENAME


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _transfer_options(config: DownloadConfig) -> list[str]:
    return [
        f"--dir={config.download_dir}",
        f"--max-connection-per-server={config.max_connections}",
        f"--min-split-size={to_aria2_size(config.min_split_size)}",
    ]


def _retry_options(config: DownloadConfig) -> list[str]:
    return [
        f"--timeout={config.timeout}",
        f"--retry-wait={config.retry_wait}",
        f"--max-tries={config.max_tries}",
    ]


def build_aria2_command(
    source: str, config: DownloadConfig, resume: bool = False
) -> list[str]:
    """
    Builds the aria2c argv for a fresh (or continued) download of `source`.

    Args:
        source: HTTP(S) URL, magnet link or path to a .torrent file.
        config: The effective configuration.
        resume: Refuse to overwrite existing files instead of renaming them.
    """
    cmd = [config.aria2c_path]
    cmd += _transfer_options(config)
    cmd.append(f"--max-concurrent-downloads={config.max_concurrent_downloads}")
    cmd += _retry_options(config)

    if resume:
        cmd += ["--continue=true", "--allow-overwrite=false"]
    else:
        cmd += ["--continue=true", "--auto-file-renaming=true"]

    cmd += [
        f"--split={config.split}",
        "--file-allocation=falloc",
        f"--check-certificate={_flag(config.check_certificate)}",
    ]

    if is_bittorrent_source(source):
        cmd += BITTORRENT_OPTIONS

    cmd.append(f"--save-session={session_file_for(config.download_dir)}")
    cmd += ["--summary-interval=5", "--console-log-level=notice"]
    cmd.append(source)
    return cmd


def build_resume_command(config: DownloadConfig, session_file: Path) -> list[str]:
    """
    Builds the aria2c argv that continues the transfers recorded in an aria2
    session file. URIs and per-download options come from the session itself.
    """
    cmd = [config.aria2c_path, "--continue=true"]
    cmd += _transfer_options(config)
    cmd += _retry_options(config)
    cmd += [
        "--allow-overwrite=false",
        "--auto-file-renaming=false",
        f"--check-certificate={_flag(config.check_certificate)}",
        f"--input-file={session_file}",
        f"--save-session={session_file}",
        "--summary-interval=5",
        "--console-log-level=notice",
    ]
    return cmd
