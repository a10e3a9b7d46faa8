"""logtail — CRLF record tailer for rotating log directories.

Watches one directory for files matching a glob pattern, drains them one at
a time in arrival order, and hands every CRLF-terminated record to a
pluggable processor.  Listeners are told when a file starts being tailed and
when a newer file has rotated it out.

Record contract: text lines terminated by CR LF; a lone CR or LF is content.
"""

__version__ = "0.1.0"
