#!/usr/bin/env python3
"""Print key events written to a session's input FIFO.

Stands in for the program's reader during a dry run
(``DOOM_DISABLE_SPAWN=1``), so posted keys can be watched live:

    scripts/fifo-monitor.py /root/doom_sessions/input_0
"""
import os
import select
import sys
import time

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(f"usage: {sys.argv[0]} <fifo-path>", file=sys.stderr)
        sys.exit(2)

    path = sys.argv[1]
    fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    print(f"Watching {path} (Ctrl-C to stop)")
    pending = b""
    try:
        while True:
            select.select([fd], [], [], 1.0)
            try:
                chunk = os.read(fd, 4096)
            except BlockingIOError:
                continue
            if not chunk:
                # No writer yet; the server holds the FIFO open once the session exists
                time.sleep(0.2)
                continue
            pending += chunk
            while b"\n" in pending:
                line, _, pending = pending.partition(b"\n")
                keysym, _, action = line.decode("utf-8", errors="replace").rpartition(":")
                print(f"{action:>4}  {keysym}")
    except KeyboardInterrupt:
        print("Stopped")
    finally:
        os.close(fd)
