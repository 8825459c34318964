"""
NoteSync: offline-first note synchronization.

Write notes anywhere, with or without a connection. Every mutation
lands in a durable local queue first; when the network comes back
the queue is pushed, the remote is pulled, and conflicts are settled
by a pluggable policy.
"""

import os

__version__ = "0.1.0"

NOTESYNC_HOME = os.environ.get("NOTESYNC_HOME", "~/.notesync")
